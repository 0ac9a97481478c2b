"""Mapping from native Ollama events to the canonical event stream."""

from __future__ import annotations

import uuid

from tarsier.events import (
    BlockStart,
    BlockStop,
    Delta,
    Error,
    StreamEnd,
    StreamEvent,
    StreamStart,
    ToolResult,
    TurnEnd,
    Usage,
)
from tarsier.streaming import (
    BackendError,
    Completion,
    NativeEvent,
    TextDelta,
    ToolCall,
    ToolCallFragment,
)
from tarsier.tools import ToolOutcome

TEXT_BLOCK = 0


class CanonicalEmitter:
    """Turns native events into canonical events for one whole call.

    A call may span several backend turns inside the tool loop, but the
    consumer sees a single message: ``StreamStart`` and the text block's
    start and stop are produced exactly once. Methods return the events
    to deliver, in order; the caller is the single writer to the sink.

    Args:
        model: Model name reported in ``StreamStart``.
        message_id: Identifier reported in ``StreamStart``.
    """

    def __init__(self, model: str, message_id: str | None = None):
        self.model = model
        self.message_id = message_id or f"msg_{uuid.uuid4().hex[:24]}"
        self.text = ""
        self.usage = Usage()
        self.done_reason: str | None = None
        self._started = False
        self._closed = False

    def start(self) -> list[StreamEvent]:
        if self._started:
            return []
        self._started = True
        return [
            StreamStart(id=self.message_id, model=self.model),
            BlockStart(index=TEXT_BLOCK, kind="text"),
        ]

    def emit(self, event: NativeEvent) -> list[StreamEvent]:
        if isinstance(event, TextDelta):
            self.text += event.text
            return [Delta(index=TEXT_BLOCK, text=event.text)]
        if isinstance(event, Completion):
            self.usage = Usage(
                input_tokens=event.input_tokens,
                output_tokens=event.output_tokens,
            )
            self.done_reason = event.done_reason
            return []
        if isinstance(event, (ToolCallFragment, BackendError)):
            return []
        raise TypeError(f"Unknown native event: {event!r}")

    def tool_result(self, call: ToolCall, outcome: ToolOutcome) -> list[StreamEvent]:
        return [ToolResult(
            tool_use_id=call.id,
            tool_name=call.name,
            content=outcome.content,
            is_error=outcome.is_error,
        )]

    def finish(self, stop_reason: str) -> list[StreamEvent]:
        if self._closed:
            return []
        self._closed = True
        return [
            BlockStop(index=TEXT_BLOCK),
            TurnEnd(
                stop_reason=stop_reason,
                input_tokens=self.usage.input_tokens,
                output_tokens=self.usage.output_tokens,
            ),
            StreamEnd(),
        ]

    def fail(self, message: str, kind: str = "ollama_error") -> list[StreamEvent]:
        if self._closed:
            return []
        self._closed = True
        return [Error(kind=kind, message=message)]
