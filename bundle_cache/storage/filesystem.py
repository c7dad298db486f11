"""ArtifactStore backed by the sharded bundle directory tree."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from collections.abc import AsyncIterable, AsyncIterator
from pathlib import Path
from typing import BinaryIO

from bundle_cache.config.models import DigestSettings
from bundle_cache.digest.layout import artifact_name, bundle_path, install_path
from bundle_cache.interfaces.storage import BundleKey

logger = logging.getLogger(__name__)

_READ_CHUNK = 65536


class FilesystemArtifactStore:
    """Stores each artifact beside the sources it was built from.

    Writes go to a temporary file in the same directory and are committed
    with an atomic rename, so readers never see a partial artifact.
    """

    def __init__(self, root: Path | str, settings: DigestSettings | None = None) -> None:
        self.root = Path(root)
        self.settings = settings or DigestSettings()

    def path_for(self, key: BundleKey) -> Path:
        install_dir = install_path(
            self.root,
            key.install_digest,
            self.settings.shard_prefix_length,
            self.settings.shard_segment_length,
        )
        return bundle_path(install_dir, key.source_digest) / artifact_name(key.options_digest)

    async def get(self, key: BundleKey) -> AsyncIterator[bytes] | None:
        path = self.path_for(key)
        if not await asyncio.to_thread(path.is_file):
            return None
        return self._read(path)

    async def _read(self, path: Path) -> AsyncIterator[bytes]:
        f = await asyncio.to_thread(open, path, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(f.read, _READ_CHUNK)
                if not chunk:
                    break
                yield chunk
        finally:
            f.close()

    async def put(self, key: BundleKey, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        path = self.path_for(key)
        f, tmp = await asyncio.to_thread(_open_temp, path.parent)
        committed = False
        try:
            async for chunk in chunks:
                await asyncio.to_thread(f.write, chunk)
                yield chunk
            await asyncio.to_thread(_commit, f, tmp, path)
            committed = True
            logger.debug("Stored artifact %s", path)
        finally:
            if not committed:
                await asyncio.to_thread(_discard, f, tmp)


def _open_temp(directory: Path) -> tuple[BinaryIO, Path]:
    directory.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=".bundle-", suffix=".tmp", dir=directory)
    return os.fdopen(fd, "wb"), Path(tmp_name)


def _commit(f: BinaryIO, tmp: Path, path: Path) -> None:
    f.close()
    os.replace(tmp, path)


def _discard(f: BinaryIO, tmp: Path) -> None:
    if not f.closed:
        f.close()
    tmp.unlink(missing_ok=True)
