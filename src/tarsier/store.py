"""Transcript persistence.

The core issues three statements: load prior messages, insert an
assistant transcript, and bump the conversation's ``updated_at``.
:class:`SQLiteStore` runs them against a local SQLite file, off the event
loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
import uuid
from typing import Protocol

from pydantic import BaseModel, Field

from tarsier.errors import PersistenceError
from tarsier.message import Message, MessageRole

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
  id TEXT PRIMARY KEY,
  title TEXT NOT NULL DEFAULT 'New Conversation',
  model TEXT NOT NULL,
  system_prompt TEXT,
  workspace_path TEXT,
  total_tokens INTEGER NOT NULL DEFAULT 0,
  created_at INTEGER NOT NULL,
  updated_at INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
  id TEXT PRIMARY KEY,
  conversation_id TEXT NOT NULL,
  role TEXT NOT NULL,
  content TEXT NOT NULL,
  model TEXT,
  token_count INTEGER DEFAULT 0,
  timestamp INTEGER NOT NULL,
  FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);
"""


def now_ms() -> int:
    return int(time.time() * 1000)


class TranscriptRecord(BaseModel):
    """One persisted assistant turn. Written whole or not at all."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    conversation_id: str
    role: str = "assistant"
    content: str
    model: str
    token_count: int = 0
    timestamp: int = Field(default_factory=now_ms)

    @classmethod
    def from_text(
        cls, conversation_id: str, text: str, model: str, token_count: int,
    ) -> "TranscriptRecord":
        return cls(
            conversation_id=conversation_id,
            content=json.dumps([{"type": "text", "text": text}]),
            model=model,
            token_count=token_count,
        )


def decode_content(raw: str) -> str:
    """Flatten stored message content to plain text.

    Content is normally a JSON list of blocks, of which only ``text``
    blocks are kept. Other JSON values are stringified; anything that is
    not JSON is used as-is.
    """
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return raw
    if isinstance(parsed, list):
        return "\n".join(
            b.get("text", "") for b in parsed
            if isinstance(b, dict) and b.get("type") == "text"
        )
    if isinstance(parsed, str):
        return parsed
    return json.dumps(parsed)


class TranscriptStore(Protocol):
    async def add_message(self, conversation_id: str, message: Message) -> None: ...

    async def load_messages(self, conversation_id: str) -> list[Message]: ...

    async def insert_transcript(self, record: TranscriptRecord) -> None: ...

    async def touch_conversation(self, conversation_id: str, timestamp: int) -> None: ...


class SQLiteStore:
    """:class:`TranscriptStore` over a SQLite database file.

    Each statement opens its own connection in a worker thread, so
    concurrent conversations never share a cursor.

    Args:
        path: Database file path.
    """

    def __init__(self, path: str):
        self.path = path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path)
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, statement: str, params: tuple = (), fetch: bool = False):
        def work():
            conn = self._connect()
            try:
                with conn:
                    cursor = conn.execute(statement, params)
                    return cursor.fetchall() if fetch else None
            finally:
                conn.close()

        try:
            return await asyncio.to_thread(work)
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e

    async def initialize(self) -> None:
        def work():
            conn = self._connect()
            try:
                conn.executescript(SCHEMA)
            finally:
                conn.close()

        try:
            await asyncio.to_thread(work)
        except sqlite3.Error as e:
            raise PersistenceError(str(e)) from e

    async def ensure_conversation(
        self,
        conversation_id: str,
        model: str,
        system_prompt: str | None = None,
        workspace_path: str | None = None,
    ) -> None:
        ts = now_ms()
        await self._run(
            "INSERT OR IGNORE INTO conversations "
            "(id, model, system_prompt, workspace_path, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (conversation_id, model, system_prompt, workspace_path, ts, ts),
        )

    async def add_message(self, conversation_id: str, message: Message) -> None:
        """Store a non-assistant message, e.g. the user's prompt."""
        await self._run(
            "INSERT INTO messages (id, conversation_id, role, content, timestamp) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                uuid.uuid4().hex,
                conversation_id,
                message.role.value,
                json.dumps([{"type": "text", "text": message.content}]),
                now_ms(),
            ),
        )

    async def load_messages(self, conversation_id: str) -> list[Message]:
        rows = await self._run(
            "SELECT role, content FROM messages "
            "WHERE conversation_id = ? ORDER BY timestamp ASC, rowid ASC",
            (conversation_id,),
            fetch=True,
        )
        messages = []
        for row in rows:
            text = decode_content(row["content"])
            if not text:
                continue
            try:
                role = MessageRole(row["role"])
            except ValueError:
                logger.warning(f"Skipping message with unknown role {row['role']!r}")
                continue
            messages.append(Message(role=role, content=text))
        return messages

    async def insert_transcript(self, record: TranscriptRecord) -> None:
        await self._run(
            "INSERT INTO messages "
            "(id, conversation_id, role, content, model, token_count, timestamp) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                record.id,
                record.conversation_id,
                record.role,
                record.content,
                record.model,
                record.token_count,
                record.timestamp,
            ),
        )

    async def touch_conversation(self, conversation_id: str, timestamp: int) -> None:
        await self._run(
            "UPDATE conversations SET updated_at = ? WHERE id = ?",
            (timestamp, conversation_id),
        )
