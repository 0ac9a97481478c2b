"""Unit tests for newline-delimited record reassembly."""

import pytest

from tarsier.framing import FrameReassembler

RECORDS = ['{"a": 1}', '{"b": "två"}', '{"c": [1, 2, 3]}']
STREAM = ("\n".join(RECORDS) + "\n").encode()


def reassemble(chunks: list[bytes]) -> list[str]:
    frames = FrameReassembler()
    out = []
    for chunk in chunks:
        out.extend(frames.feed(chunk))
    frames.close()
    return out


class TestFrameReassembler:
    def test_single_chunk_with_multiple_records(self):
        assert reassemble([STREAM]) == RECORDS

    def test_chunk_without_delimiter_buffers(self):
        frames = FrameReassembler()
        assert frames.feed(b'{"a": ') == []
        assert frames.pending == '{"a": '
        assert frames.feed(b'1}\n') == ['{"a": 1}']
        assert frames.pending == ""

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 11, 64])
    def test_chunking_invariance(self, size):
        chunks = [STREAM[i:i + size] for i in range(0, len(STREAM), size)]
        assert reassemble(chunks) == RECORDS

    def test_every_single_split_point(self):
        for cut in range(len(STREAM) + 1):
            assert reassemble([STREAM[:cut], STREAM[cut:]]) == RECORDS

    def test_multibyte_character_split_across_chunks(self):
        data = '{"t": "å"}\n'.encode()
        split = data.index("å".encode()) + 1
        assert reassemble([data[:split], data[split:]]) == ['{"t": "å"}']

    def test_blank_lines_dropped(self):
        assert reassemble([b'\n\n{"a": 1}\n  \n']) == ['{"a": 1}']

    def test_trailing_partial_record_dropped_on_close(self):
        frames = FrameReassembler()
        assert frames.feed(b'{"a": 1}\n{"b": ') == ['{"a": 1}']
        frames.close()
        assert frames.pending == ""

    def test_unterminated_only_record_never_surfaces(self):
        assert reassemble([b'{"a": 1}']) == []
