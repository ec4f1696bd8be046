"""Line-framed event parser for the analysis response stream.

The backend writes server-sent-events style frames: one JSON object per
line, prefixed with ``data: ``.  The transport delivers the body in chunks
of arbitrary size, so a frame (or even a multi-byte UTF-8 character) can be
split across two chunks.

# ─── HOW FRAME PARSING WORKS ──────────────────────────────────────────
#
#   chunk 1: b'data: {"event_type": "stage1_st'
#   chunk 2: b'art"}\ndata: {"event_type": "stag'
#   chunk 3: b'e1_complete", ...}\n'
#
#   buffer after chunk 1: 'data: {"event_type": "stage1_st'      → nothing emitted
#   buffer after chunk 2: 'data: {"event_type": "stag'           → stage1_start
#   buffer after chunk 3: ''                                     → stage1_complete
#
# Only complete lines are parsed.  Whatever follows the last newline stays
# in the buffer until more bytes arrive; at end-of-stream it is dropped.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

import structlog

from material_mapper.utils.logging import get_logger

DATA_PREFIX = "data: "

_logger: structlog.BoundLogger = get_logger(__name__)


def _utf8_decoder() -> codecs.IncrementalDecoder:
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


class FrameParser:
    """Incremental ``data:`` line parser with a single carry-over buffer.

    Feed raw byte chunks in arrival order with :meth:`feed`; each call
    returns the records completed by that chunk.  Call :meth:`close` at
    end-of-stream.
    """

    def __init__(self, decoder: codecs.IncrementalDecoder | None = None) -> None:
        self._decoder = decoder or _utf8_decoder()
        self._buffer = ""
        self.frames_parsed = 0
        self.frames_skipped = 0

    @property
    def pending(self) -> str:
        """Text received after the last newline, not yet emitted."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[dict[str, Any]]:
        """Decode *chunk*, append it to the buffer and parse complete lines.

        Parameters
        ----------
        chunk:
            The next slice of the response body, of any size.

        Returns
        -------
        list[dict]
            Parsed records for every complete ``data:`` line, in order.
        """
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        records: list[dict[str, Any]] = []
        for line in lines:
            record = self._parse_line(line)
            if record is not None:
                records.append(record)
        return records

    def close(self) -> int:
        """Flush the decoder and discard any unterminated buffer content.

        Returns
        -------
        int
            Number of characters dropped.
        """
        leftover = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if leftover.strip():
            _logger.debug("stream_trailing_fragment_dropped", chars=len(leftover))
        return len(leftover)

    def _parse_line(self, line: str) -> dict[str, Any] | None:
        line = line.rstrip("\r")
        if not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX):]
        try:
            record = json.loads(payload)
        except json.JSONDecodeError as exc:
            self.frames_skipped += 1
            _logger.warning(
                "stream_frame_unparseable",
                error=str(exc),
                preview=payload[:120],
            )
            return None

        if not isinstance(record, dict):
            self.frames_skipped += 1
            _logger.warning(
                "stream_frame_not_an_object",
                json_type=type(record).__name__,
            )
            return None

        self.frames_parsed += 1
        return record


async def iter_frames(
    chunks: AsyncIterable[bytes],
    decoder: codecs.IncrementalDecoder | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """Lazily parse an async byte stream into decoded event records.

    Awaiting the next chunk is the only suspension point.  The generator
    ends when *chunks* is exhausted; an unterminated trailing fragment is
    discarded rather than treated as a final frame.
    """
    parser = FrameParser(decoder)
    async for chunk in chunks:
        for record in parser.feed(chunk):
            yield record
    parser.close()
