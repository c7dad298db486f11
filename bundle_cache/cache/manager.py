"""Bundle cache manager: serve artifacts from the store or build them once."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping
from pathlib import Path
from typing import Any

from bundle_cache.bundler.models import ModuleSpec, SourceFile
from bundle_cache.cache.preparer import DependencyPreparer, PreparedInstall
from bundle_cache.digest.hasher import digest_options, digest_source_set
from bundle_cache.digest.layout import bundle_path, source_destination
from bundle_cache.errors import BundleError
from bundle_cache.interfaces.bundler import Bundler
from bundle_cache.interfaces.storage import ArtifactStore, BundleKey
from bundle_cache.resolver.models import Manifest
from bundle_cache.singleflight import SingleFlight

logger = logging.getLogger(__name__)

SourceSet = Mapping[str, SourceFile | Mapping[str, Any]]


class BundleCache:
    """Entry point returned by :func:`bundle_cache.create_cache`.

    Pipeline:
        manifest → DependencyPreparer → install dir
        sources → digest → BundleKey → store hit, or a single-flight build
    """

    def __init__(
        self,
        preparer: DependencyPreparer,
        bundler: Bundler,
        store: ArtifactStore,
    ) -> None:
        self.preparer = preparer
        self.bundler = bundler
        self.store = store
        self._builds: SingleFlight[BundleKey, None] = SingleFlight()

    def __call__(
        self,
        manifest: Manifest | Mapping[str, Any],
        sources: SourceSet,
        bundler_options: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[bytes]:
        return self.get_or_build(manifest, sources, bundler_options)

    async def get_or_build(
        self,
        manifest: Manifest | Mapping[str, Any],
        sources: SourceSet,
        bundler_options: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[bytes]:
        """Stream the bundle for (manifest, sources, options).

        Returns immediately; preparation and build errors are raised once
        while iterating.
        """
        manifest = manifest if isinstance(manifest, Manifest) else Manifest.model_validate(manifest)
        files = {path: SourceFile.model_validate(entry) for path, entry in sources.items()}
        options = dict(bundler_options or {})

        prepared = await self.preparer.prepare(manifest)
        key = BundleKey(
            install_digest=prepared.digest,
            source_digest=digest_source_set(files),
            options_digest=digest_options(options),
        )

        task = self._builds.get(key)
        if task is None:
            cached = await self.store.get(key)
            if cached is not None:
                logger.info("Bundle cache hit %s", key)
                async for chunk in cached:
                    yield chunk
                return
            task = self._builds.get(key)

        if task is not None:
            logger.info("Joining in-flight build %s", key)
            async for chunk in self._after_build(key, task):
                yield chunk
            return

        logger.info("Bundle cache miss %s", key)
        sink: asyncio.Queue[bytes | None] = asyncio.Queue()
        task, _ = self._builds.join(
            key, lambda: self._build(key, prepared, files, options, sink)
        )
        while (chunk := await sink.get()) is not None:
            yield chunk
        await asyncio.shield(task)

    async def _after_build(self, key: BundleKey, task: asyncio.Task[None]) -> AsyncIterator[bytes]:
        await asyncio.shield(task)
        cached = await self.store.get(key)
        if cached is None:
            raise BundleError(f"artifact for {key} missing after build")
        async for chunk in cached:
            yield chunk

    async def _build(
        self,
        key: BundleKey,
        prepared: PreparedInstall,
        files: dict[str, SourceFile],
        options: dict[str, Any],
        sink: asyncio.Queue[bytes | None],
    ) -> None:
        try:
            bundle_dir = bundle_path(prepared.path, key.source_digest)
            modules = await asyncio.to_thread(_materialize, bundle_dir, files)
            stream = self.bundler.bundle(modules, options)
            async for chunk in self.store.put(key, stream):
                sink.put_nowait(chunk)
            logger.info("Built bundle %s", key)
        finally:
            sink.put_nowait(None)


def _materialize(bundle_dir: Path, files: dict[str, SourceFile]) -> list[ModuleSpec]:
    """Write every source under *bundle_dir* and describe it for the bundler.

    All paths are checked before anything is written; two keys naming the
    same file are rejected.
    """
    destinations: dict[str, Path] = {}
    claimed: dict[Path, str] = {}
    for rel in sorted(files):
        dest = source_destination(bundle_dir, rel)
        other = claimed.setdefault(dest.resolve(), rel)
        if other != rel:
            raise ValueError(f"source paths {other!r} and {rel!r} name the same file")
        destinations[rel] = dest

    bundle_dir.mkdir(parents=True, exist_ok=True)
    modules: list[ModuleSpec] = []
    for rel, dest in destinations.items():
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_text(files[rel].source, encoding="utf-8")
        modules.append(ModuleSpec.for_source(dest, rel, files[rel]))
    return modules
