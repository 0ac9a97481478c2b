import logging

from tarsier.events import Usage
from tarsier.store import TranscriptRecord, TranscriptStore

logger = logging.getLogger(__name__)


class TranscriptFinalizer:
    """Persists the assistant's turn once a call is over.

    Best-effort: a failing store is logged and never raised, since the
    conversation already reached the user.
    """

    def __init__(self, store: TranscriptStore):
        self.store = store

    async def finalize(
        self,
        conversation_id: str,
        text: str,
        usage: Usage,
        model: str,
    ) -> TranscriptRecord | None:
        try:
            record = TranscriptRecord.from_text(
                conversation_id=conversation_id,
                text=text,
                model=model,
                token_count=usage.total_tokens,
            )
            await self.store.insert_transcript(record)
            await self.store.touch_conversation(conversation_id, record.timestamp)
        except Exception:
            logger.exception(f"Failed to save assistant message for {conversation_id}")
            return None
        logger.debug(f"Saved transcript {record.id} ({record.token_count} tokens)")
        return record
