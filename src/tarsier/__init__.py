from tarsier.config import Settings, configure_logging
from tarsier.errors import PersistenceError, TarsierError, TransportError
from tarsier.instrumentation import instrument, is_instrumented, uninstrument
from tarsier.message import Message, MessageRole
from tarsier.provider import ChatRequest, ModelProvider, OllamaProvider
from tarsier.runner import Runner, RunResult, TurnRequest
from tarsier.session import Session, stream_conversation
from tarsier.sse import sse_generator
from tarsier.store import SQLiteStore, TranscriptRecord
from tarsier.tools import Tool, ToolOutcome, ToolRegistry, ToolSchema, tool
from tarsier.transcript import TranscriptFinalizer

__all__ = [
    "ChatRequest",
    "Message",
    "MessageRole",
    "ModelProvider",
    "OllamaProvider",
    "PersistenceError",
    "RunResult",
    "Runner",
    "SQLiteStore",
    "Session",
    "Settings",
    "TarsierError",
    "Tool",
    "ToolOutcome",
    "ToolRegistry",
    "ToolSchema",
    "TranscriptFinalizer",
    "TranscriptRecord",
    "TransportError",
    "TurnRequest",
    "configure_logging",
    "instrument",
    "is_instrumented",
    "sse_generator",
    "stream_conversation",
    "tool",
    "uninstrument",
]
