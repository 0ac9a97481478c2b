"""Reassembly of newline-delimited records from a byte stream.

Ollama streams one JSON object per line, but the transport hands us
arbitrary byte chunks: a chunk may end halfway through a record, or
halfway through a multi-byte character.
"""

from __future__ import annotations

import codecs
import logging

logger = logging.getLogger(__name__)


class FrameReassembler:
    """Turns arbitrary byte chunks into complete text records."""

    delimiter = "\n"

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """The unterminated fragment carried into the next ``feed``."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        """Return every record completed by *chunk*, in order.

        Whitespace-only records are dropped. The trailing fragment after
        the last delimiter (possibly empty) is kept for the next call.
        """
        self._buffer += self._decoder.decode(chunk)
        *complete, self._buffer = self._buffer.split(self.delimiter)
        return [record for record in complete if record.strip()]

    def close(self) -> None:
        """End of transport. A dangling partial record is discarded."""
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer.strip():
            logger.debug(
                f"Dropping {len(self._buffer)} chars of unterminated record"
            )
        self._buffer = ""
