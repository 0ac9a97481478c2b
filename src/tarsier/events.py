"""Canonical streaming events delivered to front ends.

Every event carries a ``type`` discriminator and renders to the JSON
payload front ends consume via :meth:`StreamEvent.to_wire`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar


@dataclass
class Usage:
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class StreamEvent:
    """Base for all canonical events."""

    type: ClassVar[str] = ""

    def to_wire(self) -> dict:
        return {"type": self.type}


@dataclass
class StreamStart(StreamEvent):
    type: ClassVar[str] = "message_start"

    id: str = ""
    model: str = ""
    role: str = "assistant"

    def to_wire(self) -> dict:
        return {
            "type": self.type,
            "message": {"id": self.id, "role": self.role, "model": self.model},
        }


@dataclass
class BlockStart(StreamEvent):
    type: ClassVar[str] = "content_block_start"

    index: int = 0
    kind: str = "text"

    def to_wire(self) -> dict:
        return {
            "type": self.type,
            "index": self.index,
            "content_block": {"type": self.kind, "text": ""},
        }


@dataclass
class Delta(StreamEvent):
    type: ClassVar[str] = "content_block_delta"

    index: int = 0
    text: str = ""

    def to_wire(self) -> dict:
        return {
            "type": self.type,
            "index": self.index,
            "delta": {"type": "text_delta", "text": self.text},
        }


@dataclass
class BlockStop(StreamEvent):
    type: ClassVar[str] = "content_block_stop"

    index: int = 0

    def to_wire(self) -> dict:
        return {"type": self.type, "index": self.index}


@dataclass
class TurnEnd(StreamEvent):
    """Carries the stop reason and usage for the whole call.

    ``stop_reason`` is ``"end_turn"`` when the model answered, or
    ``"iteration_limit"`` when the tool loop ran out of round-trips.
    """

    type: ClassVar[str] = "message_delta"

    stop_reason: str = "end_turn"
    input_tokens: int = 0
    output_tokens: int = 0

    def to_wire(self) -> dict:
        return {
            "type": self.type,
            "delta": {"stop_reason": self.stop_reason},
            "usage": {
                "input_tokens": self.input_tokens,
                "output_tokens": self.output_tokens,
            },
        }


@dataclass
class StreamEnd(StreamEvent):
    """Final event of a successful call."""

    type: ClassVar[str] = "message_stop"


@dataclass
class Error(StreamEvent):
    """Final event of a failed call."""

    type: ClassVar[str] = "error"

    kind: str = "ollama_error"
    message: str = ""

    def to_wire(self) -> dict:
        return {
            "type": self.type,
            "error": {"type": self.kind, "message": self.message},
        }


@dataclass
class ToolResult(StreamEvent):
    """Side-channel report of one executed tool call."""

    type: ClassVar[str] = "tool_result"

    tool_use_id: str = ""
    tool_name: str = ""
    content: str = ""
    is_error: bool = False

    def to_wire(self) -> dict:
        return {
            "type": self.type,
            "tool_use_id": self.tool_use_id,
            "tool_name": self.tool_name,
            "content": self.content,
            "is_error": self.is_error,
        }
