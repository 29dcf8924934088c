"""
Tests for the stream reframer.

Tests cover:
- Frame reassembly across arbitrary chunk boundaries
- Multi-byte characters split between chunks
- Residual (unterminated) final frame and the trailing newline
- Pacing between frames
- Failure propagation
"""

import asyncio
import time

import pytest

from sse_handler import (
    DEFAULT_PACING_DELAY_S,
    FRAME_DELIMITER,
    FrameReframer,
    reframe,
)


async def _source(chunks):
    for chunk in chunks:
        yield chunk


async def _collect(chunks, delay_s=0.0, sleep=None):
    kwargs = {"sleep": sleep} if sleep is not None else {}
    return [out async for out in reframe(_source(chunks), delay_s, **kwargs)]


def _split_every(data: bytes, size: int):
    return [data[i:i + size] for i in range(0, len(data), size)]


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.calls = []

    async def __call__(self, delay):
        self.calls.append(delay)


# ============================================================================
# FrameReframer Tests
# ============================================================================

class TestFrameReframer:
    """Test the buffer/decoder half of the reframer."""

    def test_feed_returns_complete_frames_only(self):
        r = FrameReframer()
        assert r.feed(b"data: X\n\ndata: ") == ["data: X\n\n"]
        assert r.pending == "data: "
        assert r.feed(b"Y\n\n") == ["data: Y\n\n"]
        assert r.pending == ""

    def test_delimiter_split_across_chunks(self):
        r = FrameReframer()
        assert r.feed(b"a\n") == []
        assert r.feed(b"\nb") == ["a\n\n"]
        assert r.finish() == "b"

    def test_multibyte_character_split_across_chunks(self):
        data = "data: привет 👋\n\n".encode("utf-8")
        r = FrameReframer()
        frames = []
        for i in range(len(data)):
            frames.extend(r.feed(data[i:i + 1]))
        assert frames == ["data: привет 👋\n\n"]
        assert r.finish() == ""

    def test_finish_flushes_incomplete_character_as_replacement(self):
        r = FrameReframer()
        r.feed("ok é".encode("utf-8")[:-1])
        assert r.finish() == "ok �"

    def test_finish_resets_buffer(self):
        r = FrameReframer()
        r.feed(b"partial")
        assert r.finish() == "partial"
        assert r.pending == ""
        assert r.finish() == ""

    def test_contents_not_inspected(self):
        r = FrameReframer()
        assert r.feed(b"not an event at all\n\n{}\n\n") == [
            "not an event at all\n\n",
            "{}\n\n",
        ]


# ============================================================================
# reframe() Tests
# ============================================================================

class TestReframe:
    """Test the async streaming transform."""

    @pytest.mark.asyncio
    async def test_residual_handling(self):
        out = await _collect([b"a\n\nb"])
        assert out == [b"a\n\n", b"b", b"\n"]

    @pytest.mark.asyncio
    async def test_empty_stream_emits_terminator_only(self):
        assert await _collect([]) == [b"\n"]

    @pytest.mark.asyncio
    async def test_trailing_newline_after_complete_frames(self):
        out = await _collect([b"data: X\n\ndata: ", b"Y\n\n"])
        assert out == [b"data: X\n\n", b"data: Y\n\n", b"\n"]

    @pytest.mark.asyncio
    async def test_empty_chunks_ignored(self):
        out = await _collect([b"", b"x\n\n", b"", b"y"])
        assert out == [b"x\n\n", b"y", b"\n"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 16, 1000])
    async def test_frame_integrity_for_any_chunking(self, size):
        frames = [f"data: {{\"i\": {i}, \"text\": \"héllo ✓\"}}" for i in range(12)]
        payload = "".join(f + FRAME_DELIMITER for f in frames).encode("utf-8")

        out = await _collect(_split_every(payload, size))

        assert out[-1] == b"\n"
        assert b"".join(out) == payload + b"\n"
        emitted = [o.decode("utf-8") for o in out[:-1]]
        assert emitted == [f + FRAME_DELIMITER for f in frames]

    @pytest.mark.asyncio
    async def test_order_preserved_with_residual(self):
        payload = b"1\n\n2\n\n3\n\ntail"
        out = await _collect(_split_every(payload, 4))
        assert out == [b"1\n\n", b"2\n\n", b"3\n\n", b"tail", b"\n"]

    @pytest.mark.asyncio
    async def test_pacing_after_each_frame_not_after_residual(self):
        sleep = RecordingSleep()
        out = await _collect([b"a\n\nb\n\nc"], delay_s=0.5, sleep=sleep)
        assert out == [b"a\n\n", b"b\n\n", b"c", b"\n"]
        assert sleep.calls == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_zero_delay_skips_sleep(self):
        sleep = RecordingSleep()
        await _collect([b"a\n\nb\n\n"], delay_s=0.0, sleep=sleep)
        assert sleep.calls == []

    def test_default_delay(self):
        assert DEFAULT_PACING_DELAY_S == pytest.approx(0.03)

    @pytest.mark.asyncio
    async def test_pacing_observable_in_timing(self):
        delay = 0.05
        stamps = []
        async for _ in reframe(_source([b"x\n\ny\n\nz\n\n"]), delay):
            stamps.append(time.monotonic())

        assert len(stamps) == 4
        assert stamps[1] - stamps[0] >= delay * 0.9
        assert stamps[2] - stamps[1] >= delay * 0.9

    @pytest.mark.asyncio
    async def test_source_failure_propagates_without_flush(self):
        async def failing():
            yield b"ok\n\npartial"
            raise ConnectionResetError("upstream went away")

        seen = []
        with pytest.raises(ConnectionResetError):
            async for out in reframe(failing(), 0.0):
                seen.append(out)

        assert seen == [b"ok\n\n"]

    @pytest.mark.asyncio
    async def test_independent_pipelines(self):
        a, b = await asyncio.gather(
            _collect([b"A1\n", b"\nA2"]),
            _collect([b"B1\n\n", b"B2\n\n"]),
        )
        assert a == [b"A1\n\n", b"A2", b"\n"]
        assert b == [b"B1\n\n", b"B2\n\n", b"\n"]
