"""Streaming primitives for Ollama chat responses.

:func:`interpret` turns one reassembled record into native events.  The
:class:`ToolCallAccumulator` collects the tool calls a single backend
turn asks for, since they may be spread across several records.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Union

logger = logging.getLogger(__name__)


@dataclass
class TextDelta:
    """Incremental assistant text."""

    text: str


@dataclass
class ToolCallFragment:
    """One tool invocation named in a streaming record."""

    name: str | None = None
    arguments: dict = field(default_factory=dict)
    native_id: str | None = None


@dataclass
class Completion:
    """The backend finished its turn."""

    input_tokens: int = 0
    output_tokens: int = 0
    done_reason: str | None = None


@dataclass
class BackendError:
    """The backend reported a failure in the middle of the stream."""

    message: str


NativeEvent = Union[TextDelta, ToolCallFragment, Completion, BackendError]


def _parse_arguments(raw: Any) -> dict:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {"input": raw}
        if isinstance(parsed, dict):
            return parsed
        return {"input": parsed}
    return {}


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _count(value: Any) -> int:
    # bool is an int subclass but never a token count
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return 0


def interpret(record: str) -> list[NativeEvent]:
    """Parse one Ollama stream record.

    A single record may carry text, tool calls and the completion marker
    at once, so every recognised shape becomes its own event.  An empty
    list means the record was skipped: malformed JSON and unknown shapes
    never abort the stream.
    """
    try:
        payload = json.loads(record)
    except json.JSONDecodeError:
        logger.debug(f"Skipping unparsable record: {record[:80]!r}")
        return []
    if not isinstance(payload, dict):
        return []

    if isinstance(payload.get("error"), str):
        return [BackendError(message=payload["error"])]

    events: list[NativeEvent] = []
    message = payload.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str) and content:
            events.append(TextDelta(text=content))
        tool_calls = message.get("tool_calls")
        for raw_call in tool_calls if isinstance(tool_calls, list) else []:
            if not isinstance(raw_call, dict):
                continue
            function = raw_call.get("function")
            if not isinstance(function, dict):
                logger.debug(f"Skipping tool call without a function object: {raw_call!r}")
                continue
            events.append(ToolCallFragment(
                name=_str_or_none(function.get("name")),
                arguments=_parse_arguments(function.get("arguments")),
                native_id=_str_or_none(raw_call.get("id")),
            ))

    if payload.get("done") is True:
        events.append(Completion(
            input_tokens=_count(payload.get("prompt_eval_count")),
            output_tokens=_count(payload.get("eval_count")),
            done_reason=_str_or_none(payload.get("done_reason")),
        ))
    return events


@dataclass
class ToolCall:
    """A resolved tool call ready to execute."""

    id: str = ""
    name: str = ""
    arguments: dict = field(default_factory=dict)
    native_id: str | None = None

    def to_ollama(self) -> dict:
        payload: dict[str, Any] = {
            "function": {"name": self.name, "arguments": self.arguments},
        }
        if self.native_id is not None:
            payload["id"] = self.native_id
        return payload


def new_tool_call_id() -> str:
    return f"toolu_{uuid.uuid4().hex[:24]}"


class ToolCallAccumulator:
    """Assembles the tool calls requested during one backend turn."""

    def __init__(self) -> None:
        self._pending: dict[str, ToolCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def feed(self, fragment: ToolCallFragment) -> None:
        if fragment.native_id is not None and fragment.native_id in self._pending:
            tc = self._pending[fragment.native_id]
        else:
            tc = ToolCall(
                id=fragment.native_id or new_tool_call_id(),
                native_id=fragment.native_id,
            )
            self._pending[tc.id] = tc
        if fragment.name is not None:
            tc.name = fragment.name
        tc.arguments.update(fragment.arguments)

    def drain(self) -> list[ToolCall]:
        """Return completed tool calls in arrival order and reset."""
        calls = list(self._pending.values())
        self._pending = {}
        return calls
