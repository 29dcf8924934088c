"""Re-framing of streamed (SSE-style) upstream bodies.

Upstream bytes arrive in chunks whose boundaries have nothing to do with event
boundaries. The reframer collects text until a blank line ("\\n\\n") closes a
frame, emits each complete frame on its own, and waits a short pacing delay
between frames so that bursty upstream delivery reaches the client at a steady
typewriter-like cadence. Frame contents are never inspected.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from typing import AsyncIterator, Awaitable, Callable, List

log = logging.getLogger("azure_proxy")

FRAME_DELIMITER = "\n\n"
STREAM_TERMINATOR = "\n"
DEFAULT_PACING_DELAY_S = 0.03

_ENCODED_TERMINATOR = STREAM_TERMINATOR.encode("utf-8")


class FrameReframer:
    """Request-scoped buffer that turns arbitrary chunks into complete frames."""

    def __init__(self) -> None:
        # Multi-byte characters may be split across chunks; the decoder keeps the tail.
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer: str = ""

    @property
    def pending(self) -> str:
        """Text received after the last delimiter."""
        return self._buffer

    def feed(self, chunk: bytes) -> List[str]:
        """
        Consume one chunk and return the frames it completed.

        Each returned frame carries its delimiter. The text after the last
        delimiter (possibly empty) stays buffered.
        """
        self._buffer += self._decoder.decode(chunk)
        parts = self._buffer.split(FRAME_DELIMITER)
        self._buffer = parts.pop()
        return [p + FRAME_DELIMITER for p in parts]

    def finish(self) -> str:
        """Return the unterminated residual at end of stream and reset the buffer."""
        residual = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return residual


async def reframe(
    source: AsyncIterator[bytes],
    delay_s: float = DEFAULT_PACING_DELAY_S,
    *,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> AsyncIterator[bytes]:
    """
    Re-emit ``source`` one complete frame at a time.

    - every complete frame is yielded with its delimiter, followed by ``delay_s`` of pacing
    - at end of stream a non-empty residual is yielded as-is (no delimiter added)
    - a single "\\n" is always yielded last to mark the end of the stream

    Errors raised by ``source`` propagate; the buffered partial frame is dropped.
    """
    reframer = FrameReframer()
    frames = 0

    async for chunk in source:
        if not chunk:
            continue
        for frame in reframer.feed(chunk):
            yield frame.encode("utf-8")
            frames += 1
            if delay_s > 0:
                await sleep(delay_s)

    residual = reframer.finish()
    if residual:
        yield residual.encode("utf-8")
    yield _ENCODED_TERMINATOR

    log.debug("Reframed stream finished frames=%d residual_len=%d", frames, len(residual))
