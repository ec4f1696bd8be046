"""Unit tests for the data-line frame parser."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

import pytest

from material_mapper.pipeline.frame_parser import FrameParser, iter_frames


def _frame(payload: dict) -> bytes:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n".encode()


async def _chunks(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


# ======================================================================
# FrameParser.feed
# ======================================================================


class TestFrameParserFeed:
    def test_single_complete_line(self) -> None:
        parser = FrameParser()
        records = parser.feed(_frame({"event_type": "stage1_start"}))
        assert records == [{"event_type": "stage1_start"}]
        assert parser.pending == ""

    def test_multiple_lines_in_one_chunk_keep_order(self) -> None:
        parser = FrameParser()
        chunk = _frame({"event_type": "a"}) + _frame({"event_type": "b"}) + _frame({"event_type": "c"})
        records = parser.feed(chunk)
        assert [r["event_type"] for r in records] == ["a", "b", "c"]

    def test_line_split_across_chunks_is_emitted_once(self) -> None:
        parser = FrameParser()
        data = _frame({"event_type": "stage1_complete", "extracted_materials": ["steel"]})
        first, second = data[:17], data[17:]

        assert parser.feed(first) == []
        assert parser.pending == first.decode()
        records = parser.feed(second)

        assert records == [{"event_type": "stage1_complete", "extracted_materials": ["steel"]}]
        assert parser.pending == ""

    @pytest.mark.parametrize("split", [1, 5, 6, 20, 40])
    def test_any_split_point_yields_same_records(self, split: int) -> None:
        data = _frame({"event_type": "x", "message": "one"}) + _frame({"event_type": "y"})
        parser = FrameParser()
        records = parser.feed(data[:split]) + parser.feed(data[split:])
        assert [r["event_type"] for r in records] == ["x", "y"]

    def test_multibyte_character_split_across_chunks(self) -> None:
        parser = FrameParser()
        data = _frame({"event_type": "stage1_complete", "extracted_materials": ["béton"]})
        cut = data.index("é".encode()) + 1  # inside the two-byte sequence

        assert parser.feed(data[:cut]) == []
        records = parser.feed(data[cut:])

        assert records[0]["extracted_materials"] == ["béton"]

    def test_invalid_json_line_is_skipped_and_parsing_continues(self) -> None:
        parser = FrameParser()
        chunk = b'data: {"event_type": "broken"\n' + _frame({"event_type": "ok"})
        records = parser.feed(chunk)
        assert records == [{"event_type": "ok"}]
        assert parser.frames_skipped == 1
        assert parser.frames_parsed == 1

    def test_non_object_json_is_skipped(self) -> None:
        parser = FrameParser()
        records = parser.feed(b"data: [1, 2, 3]\ndata: 42\n" + _frame({"event_type": "ok"}))
        assert records == [{"event_type": "ok"}]
        assert parser.frames_skipped == 2

    def test_lines_without_prefix_are_ignored(self) -> None:
        parser = FrameParser()
        chunk = b": keep-alive\n\nevent: progress\n" + _frame({"event_type": "ok"})
        assert parser.feed(chunk) == [{"event_type": "ok"}]
        assert parser.frames_skipped == 0

    def test_prefix_without_space_is_not_a_frame(self) -> None:
        parser = FrameParser()
        assert parser.feed(b'data:{"event_type": "x"}\n') == []

    def test_crlf_line_endings_are_tolerated(self) -> None:
        parser = FrameParser()
        records = parser.feed(b'data: {"event_type": "a"}\r\ndata: {"event_type": "b"}\r\n')
        assert [r["event_type"] for r in records] == ["a", "b"]


# ======================================================================
# FrameParser.close
# ======================================================================


class TestFrameParserClose:
    def test_unterminated_fragment_is_discarded(self) -> None:
        parser = FrameParser()
        parser.feed(_frame({"event_type": "a"}) + b'data: {"event_type": "b"}')
        dropped = parser.close()
        assert dropped == len('data: {"event_type": "b"}')
        assert parser.pending == ""

    def test_close_with_empty_buffer_drops_nothing(self) -> None:
        parser = FrameParser()
        parser.feed(_frame({"event_type": "a"}))
        assert parser.close() == 0


# ======================================================================
# iter_frames
# ======================================================================


class TestIterFrames:
    @pytest.mark.asyncio
    async def test_yields_records_across_chunk_boundaries(self) -> None:
        data = _frame({"event_type": "a"}) + _frame({"event_type": "b"})
        parts = [data[i : i + 7] for i in range(0, len(data), 7)]

        records = [r async for r in iter_frames(_chunks(*parts))]

        assert [r["event_type"] for r in records] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_trailing_fragment_is_not_emitted(self) -> None:
        records = [
            r
            async for r in iter_frames(
                _chunks(_frame({"event_type": "a"}), b'data: {"event_type": "late"}')
            )
        ]
        assert records == [{"event_type": "a"}]

    @pytest.mark.asyncio
    async def test_empty_stream_yields_nothing(self) -> None:
        records = [r async for r in iter_frames(_chunks())]
        assert records == []
