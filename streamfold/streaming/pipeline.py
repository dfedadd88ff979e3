"""
streamfold - Decode Pipeline

Byte stream -> event-stream frames -> canonical increments.
"""

from typing import AsyncIterator, Optional

from .deltas import DecodedFrame
from .frames import FrameReader
from .normalizer import get_decoder, sentinel_for
from ..core.models import Provider


class DeltaStream:
    """
    Async iterator of DecodedFrame for one provider response body.

    Frames that decode to nothing (pings, text block starts, role-only
    chunks) are skipped. ``aclose`` releases the byte source even if
    iteration never started.
    """

    def __init__(
        self,
        source: AsyncIterator[bytes],
        provider: Provider,
        request_id: str = "",
    ):
        self.provider = Provider(provider)
        self._reader = FrameReader(source, sentinel_for(self.provider))
        self._decoder = get_decoder(self.provider, request_id)
        self._iterator: Optional[AsyncIterator[DecodedFrame]] = None
        self._closed = False

    def __aiter__(self) -> "DeltaStream":
        return self

    async def __anext__(self) -> DecodedFrame:
        if self._closed:
            raise StopAsyncIteration
        if self._iterator is None:
            self._iterator = self._frames()
        return await self._iterator.__anext__()

    async def _frames(self) -> AsyncIterator[DecodedFrame]:
        async for event in self._reader:
            frame = self._decoder.decode(event.data)
            if frame:
                yield frame

    async def aclose(self):
        if self._closed:
            return
        self._closed = True
        try:
            if self._iterator is not None:
                await self._iterator.aclose()
        finally:
            await self._reader.aclose()


def delta_stream(
    source: AsyncIterator[bytes],
    provider: Provider,
    request_id: str = "",
) -> DeltaStream:
    """Decode a provider response body into DecodedFrames."""
    return DeltaStream(source, provider, request_id)
