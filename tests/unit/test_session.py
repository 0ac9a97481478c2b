import pytest

from tarsier.message import Message, MessageRole
from tarsier.session import Session
from tests.conftest import MemoryStore


@pytest.mark.asyncio
async def test_load_reads_history_in_order():
    history = {
        "c1": [
            Message(role=MessageRole.USER, content="hello"),
            Message(role=MessageRole.ASSISTANT, content="hi there"),
        ],
    }
    session = await Session.load(MemoryStore(history=history), "c1")

    assert session.conversation_id == "c1"
    assert [m.content for m in session.transcript] == ["hello", "hi there"]


@pytest.mark.asyncio
async def test_load_unknown_conversation_is_empty():
    session = await Session.load(MemoryStore(), "nope")
    assert session.transcript == []


@pytest.mark.asyncio
async def test_load_failure_yields_fresh_session(caplog):
    session = await Session.load(MemoryStore(fail=True), "c1")

    assert session.transcript == []
    assert "Could not load history for c1" in caplog.text


def test_plain_messages_round_trip():
    """A transcript of plain messages survives dump/validate."""
    session = Session(conversation_id="s1")
    session.transcript = [
        Message(role=MessageRole.USER, content="hello"),
        Message(role=MessageRole.ASSISTANT, content="hi there"),
    ]

    restored = Session.model_validate(session.model_dump())

    assert restored.conversation_id == "s1"
    assert [m.role for m in restored.transcript] == [
        MessageRole.USER, MessageRole.ASSISTANT,
    ]
    assert restored.transcript[1].content == "hi there"


class BrokenStore(MemoryStore):
    async def load_messages(self, conversation_id):
        raise OSError("connection refused")


@pytest.mark.asyncio
async def test_load_any_store_error_yields_fresh_session(caplog):
    session = await Session.load(BrokenStore(), "c1")

    assert session.transcript == []
    assert "connection refused" in caplog.text
