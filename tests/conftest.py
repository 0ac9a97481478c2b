import json

import pytest

from tarsier.errors import PersistenceError
from tarsier.message import Message, MessageRole
from tarsier.provider import ChatRequest, ModelProvider
from tarsier.runner import Runner, TurnRequest
from tarsier.tools import ToolOutcome, ToolSchema
from tarsier.transcript import TranscriptFinalizer


# ---------------------------------------------------------------------------
# Ollama record builders (mirrors /api/chat stream shape)
# ---------------------------------------------------------------------------

def text_record(text: str) -> dict:
    return {"message": {"role": "assistant", "content": text}, "done": False}


def tool_record(name: str, args: dict, call_id: str | None = None) -> dict:
    call = {"function": {"name": name, "arguments": args}}
    if call_id is not None:
        call["id"] = call_id
    return {
        "message": {"role": "assistant", "content": "", "tool_calls": [call]},
        "done": False,
    }


def done_record(prompt: int = 0, response: int = 0) -> dict:
    return {
        "message": {"role": "assistant", "content": ""},
        "done": True,
        "done_reason": "stop",
        "prompt_eval_count": prompt,
        "eval_count": response,
    }


def ndjson(*records: dict) -> bytes:
    """Encode records the way Ollama streams them."""
    return b"".join(json.dumps(r).encode() + b"\n" for r in records)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------

class MockProvider(ModelProvider):
    """Provider that replays pre-queued byte streams. No network calls.

    Each entry in ``turns`` is either a list of byte chunks for one
    backend call, or an exception to raise for that call.
    """

    def __init__(self, turns=None):
        self.turns: list = list(turns or [])
        self.call_log: list[ChatRequest] = []

    async def stream_chat(self, request):
        self.call_log.append(request)
        turn = self.turns.pop(0)
        if isinstance(turn, BaseException):
            raise turn
        for chunk in turn:
            yield chunk


class LoopingProvider(ModelProvider):
    """Provider that asks for the same tool on every call."""

    def __init__(self, name: str = "search"):
        self.name = name
        self.call_log: list[ChatRequest] = []

    async def stream_chat(self, request):
        self.call_log.append(request)
        yield ndjson(
            tool_record(self.name, {"q": str(len(self.call_log))}),
            done_record(1, 1),
        )


class RecordingExecutor:
    """Tool executor returning canned outcomes and logging every call."""

    def __init__(self, outcomes: dict[str, ToolOutcome] | None = None):
        self.outcomes = outcomes or {}
        self.calls: list[tuple[str, dict, str | None]] = []

    async def __call__(self, name, arguments, workspace_path=None):
        self.calls.append((name, arguments, workspace_path))
        return self.outcomes.get(name, ToolOutcome(content=f"{name} ok"))


class MemoryStore:
    """In-memory TranscriptStore."""

    def __init__(self, history=None, fail: bool = False):
        self.history: dict[str, list[Message]] = history or {}
        self.fail = fail
        self.records = []
        self.touched: list[tuple[str, int]] = []
        self.added: list[tuple[str, Message]] = []

    async def add_message(self, conversation_id, message):
        self.added.append((conversation_id, message))

    async def load_messages(self, conversation_id):
        if self.fail:
            raise PersistenceError("disk on fire")
        return list(self.history.get(conversation_id, []))

    async def insert_transcript(self, record):
        if self.fail:
            raise PersistenceError("disk on fire")
        self.records.append(record)

    async def touch_conversation(self, conversation_id, timestamp):
        self.touched.append((conversation_id, timestamp))


def search_schema() -> ToolSchema:
    return ToolSchema(
        name="search",
        description="Search the workspace.",
        input_schema={
            "type": "object",
            "properties": {"q": {"type": "string"}},
            "required": ["q"],
        },
    )


def make_request(content: str = "hi", model: str = "qwen2.5", **kwargs) -> TurnRequest:
    return TurnRequest(
        conversation_id=kwargs.pop("conversation_id", "conv-1"),
        model=model,
        message=Message(role=MessageRole.USER, content=content),
        **kwargs,
    )


def wire_types(events) -> list[str]:
    return [e.to_wire()["type"] for e in events]


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def make_runner(store, executor):
    """Factory fixture building a Runner wired to the in-memory store."""
    def _make(provider, max_iterations=10, tool_executor=None, finalize=True):
        return Runner(
            provider=provider,
            tool_executor=tool_executor or executor,
            max_iterations=max_iterations,
            finalizer=TranscriptFinalizer(store) if finalize else None,
        )
    return _make
