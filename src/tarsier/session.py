import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import aclosing

from pydantic import BaseModel

from tarsier.errors import PersistenceError
from tarsier.events import StreamEvent
from tarsier.message import Message, MessageRole
from tarsier.provider import supports_vision
from tarsier.runner import Runner, TurnRequest
from tarsier.store import TranscriptStore
from tarsier.tools import ToolSchema, select_tools

logger = logging.getLogger(__name__)


class Session(BaseModel):
    conversation_id: str
    transcript: list[Message] = []

    @classmethod
    async def load(cls, store: TranscriptStore, conversation_id: str) -> "Session":
        """Read prior messages. A store failure yields a fresh session."""
        try:
            transcript = await store.load_messages(conversation_id)
        except Exception as e:
            logger.warning(f"Could not load history for {conversation_id}: {e}")
            transcript = []
        return cls(conversation_id=conversation_id, transcript=transcript)


async def stream_conversation(
    runner: Runner,
    store: TranscriptStore,
    *,
    conversation_id: str,
    model: str,
    content: str,
    system_prompt: str | None = None,
    workspace_path: str | None = None,
    tools: Iterable[ToolSchema] = (),
    allowed_tools: Iterable[str] | None = None,
    disallowed_tools: Iterable[str] | None = None,
    images: list[str] | None = None,
) -> AsyncIterator[StreamEvent]:
    """Send *content* to *model* and stream back canonical events.

    Loads the conversation's history, records the user's message, and
    drives *runner* over the combined transcript.

    Args:
        runner: The tool loop to drive.
        store: Where history is read from and the user message is saved.
        conversation_id: Conversation to continue.
        model: Ollama model name.
        content: The user's message text.
        system_prompt: Optional system instruction.
        workspace_path: Directory tools operate in.
        tools: Every tool schema available to this deployment.
        allowed_tools: If given, only these tool names are offered.
        disallowed_tools: Tool names never offered.
        images: Base64-encoded images. Dropped for models without vision.
    """
    session = await Session.load(store, conversation_id)

    if images and not supports_vision(model):
        logger.warning(
            f"Model {model} does not support images. Images will be ignored."
        )
        images = None
    message = Message(role=MessageRole.USER, content=content, images=images or None)

    try:
        await store.add_message(conversation_id, message)
    except PersistenceError as e:
        logger.warning(f"Could not save user message for {conversation_id}: {e}")

    request = TurnRequest(
        conversation_id=conversation_id,
        model=model,
        message=message,
        history=session.transcript,
        system_prompt=system_prompt,
        tools=select_tools(tools, allowed_tools, disallowed_tools),
        workspace_path=workspace_path,
    )
    async with aclosing(runner.iter(request)) as events:
        async for event in events:
            yield event
