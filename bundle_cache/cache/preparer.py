"""Dependency preparation: resolve, cache, digest and link an install directory."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path

from bundle_cache.config.models import DigestSettings
from bundle_cache.digest.hasher import digest_dependency_tree, digest_manifest
from bundle_cache.digest.layout import INSTALLED_MARKER, install_path
from bundle_cache.interfaces.linker import Linker
from bundle_cache.interfaces.resolver import Resolver
from bundle_cache.resolver.models import DependencyArena, DependencyNode, Manifest
from bundle_cache.singleflight import SingleFlight

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreparedInstall:
    """An install directory holding one fully linked dependency tree."""

    path: Path
    digest: str
    root: DependencyNode


def first_error(group: BaseExceptionGroup) -> BaseException:
    """Return the first leaf exception of a (possibly nested) group."""
    exc: BaseException = group
    while isinstance(exc, BaseExceptionGroup):
        exc = exc.exceptions[0]
    return exc


class DependencyPreparer:
    """Turns a manifest into a linked install directory keyed by its tree digest.

    Concurrent preparations of the same manifest share one resolve, and a
    successful result is reused for ``memo_ttl`` seconds so repeated requests
    skip the registry entirely. A ``memo_ttl`` of 0 resolves every time.
    """

    def __init__(
        self,
        resolver: Resolver,
        linker: Linker,
        bundle_dir: Path | str,
        settings: DigestSettings | None = None,
        memo_ttl: float = 0.0,
    ) -> None:
        self.resolver = resolver
        self.linker = linker
        self.bundle_dir = Path(bundle_dir)
        self.settings = settings or DigestSettings()
        self.memo_ttl = memo_ttl
        self._memo: dict[str, tuple[float, PreparedInstall]] = {}
        self._prepares: SingleFlight[str, PreparedInstall] = SingleFlight()
        self._links: SingleFlight[str, None] = SingleFlight()

    async def prepare(self, manifest: Manifest) -> PreparedInstall:
        key = digest_manifest(manifest)
        hit = self._memo.get(key)
        if hit is not None:
            stored_at, prepared = hit
            fresh = time.monotonic() - stored_at < self.memo_ttl
            if fresh and await _is_installed(prepared.path):
                logger.debug("Reusing install %s for %s", prepared.digest, manifest.name)
                return prepared
            del self._memo[key]
        return await self._prepares.do(key, lambda: self._prepare(manifest, key))

    async def _prepare(self, manifest: Manifest, key: str) -> PreparedInstall:
        """Resolve *manifest* and make sure its install directory is linked.

        Steps:
            1. Stream resolved packages into an arena, caching each one
            2. Finalize the tree and digest the manifest's dependencies
            3. Create the sharded install directory (exists is fine)
            4. Link the tree once per digest and mark it installed

        The first failure among the resolver and the cache tasks is raised
        on its own; the remaining tasks are cancelled.
        """
        arena = DependencyArena()
        try:
            async with asyncio.TaskGroup() as tg:
                async for record in self.resolver.resolve(manifest):
                    arena.add(record)
                    tg.create_task(self.linker.cache_package(record))
        except BaseExceptionGroup as eg:
            raise first_error(eg)

        root = arena.finalize(manifest)
        digest = digest_dependency_tree(root.dependencies, self.settings.policy)
        path = install_path(
            self.bundle_dir,
            digest,
            self.settings.shard_prefix_length,
            self.settings.shard_segment_length,
        )
        await asyncio.to_thread(path.mkdir, parents=True, exist_ok=True)

        if await _is_installed(path):
            logger.debug("Install %s already linked", digest)
        else:
            await self._links.do(digest, lambda: self._link(path, root, digest))

        prepared = PreparedInstall(path=path, digest=digest, root=root)
        if self.memo_ttl > 0:
            self._memo[key] = (time.monotonic(), prepared)
        return prepared

    async def _link(self, path: Path, root: DependencyNode, digest: str) -> None:
        if await _is_installed(path):
            return
        logger.info(
            "Linking %d packages for %s into %s", sum(1 for _ in root.walk()), root.name, path
        )
        await self.linker.link_tree(path, root)
        await asyncio.to_thread((path / INSTALLED_MARKER).write_text, digest)


async def _is_installed(path: Path) -> bool:
    return await asyncio.to_thread((path / INSTALLED_MARKER).is_file)
