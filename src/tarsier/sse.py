"""Server-Sent Events adapter for canonical events."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from contextlib import aclosing

from tarsier.events import StreamEvent


def sse_frame(event: StreamEvent) -> str:
    return f"data: {json.dumps(event.to_wire())}\n\n"


async def sse_generator(
    event_stream: AsyncIterator[StreamEvent],
) -> AsyncIterator[str]:
    """Convert a canonical event iterator into SSE-formatted strings.

    Closing this generator closes *event_stream* too, so a client
    disconnect reaches the runner straight away.
    """
    async with aclosing(event_stream) as events:
        async for event in events:
            yield sse_frame(event)
