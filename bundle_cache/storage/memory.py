"""In-memory ArtifactStore, mainly for tests and short-lived processes."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator

from bundle_cache.interfaces.storage import BundleKey


class MemoryArtifactStore:
    def __init__(self) -> None:
        self._artifacts: dict[BundleKey, bytes] = {}
        self.puts = 0

    def __contains__(self, key: object) -> bool:
        return key in self._artifacts

    def __len__(self) -> int:
        return len(self._artifacts)

    async def get(self, key: BundleKey) -> AsyncIterator[bytes] | None:
        data = self._artifacts.get(key)
        if data is None:
            return None
        return _single(data)

    async def put(self, key: BundleKey, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        buf = bytearray()
        async for chunk in chunks:
            buf.extend(chunk)
            yield chunk
        self._artifacts[key] = bytes(buf)
        self.puts += 1


async def _single(data: bytes) -> AsyncIterator[bytes]:
    yield data
