"""Shared package cache and hard-link installer."""

from __future__ import annotations

import asyncio
import errno
import hashlib
import io
import logging
import os
import shutil
import tarfile
import tempfile
from pathlib import Path

import httpx

from bundle_cache.config.models import LinkerSettings
from bundle_cache.errors import LinkError
from bundle_cache.resolver.models import DependencyNode, ResolvedPackage
from bundle_cache.singleflight import SingleFlight

logger = logging.getLogger(__name__)

NODE_MODULES = "node_modules"
PACKAGE_DIR = "package"

# Errors meaning "hard links can't work here", not "the install is broken".
_LINK_FALLBACK_ERRNOS = {errno.EXDEV, errno.EPERM, errno.EMLINK, errno.ENOTSUP}


def cached_package_dir(cache_dir: Path, name: str, version: str) -> Path:
    """Location of an extracted package in the shared cache."""
    return Path(cache_dir).joinpath(*name.split("/"), version, PACKAGE_DIR)


class FilesystemLinker:
    """Keeps one extracted copy per package version and links it into installs.

    Packages are mirrored into each install with hard links (or copies) so a
    package's real path stays inside the install tree and its nested
    ``node_modules`` is visible to module lookup.
    """

    def __init__(
        self,
        cache_dir: Path | str,
        settings: LinkerSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.settings = settings or LinkerSettings()
        self._transport = transport
        self._fetches: SingleFlight[tuple[str, str], Path] = SingleFlight()

    # -- shared cache -----------------------------------------------------------

    async def cache_package(self, package: ResolvedPackage) -> Path:
        """Ensure ``name@version`` is extracted in the shared cache."""
        target = cached_package_dir(self.cache_dir, package.name, package.version)
        if await asyncio.to_thread(target.is_dir):
            return target
        return await self._fetches.do(
            (package.name, package.version), lambda: self._fetch_into_cache(package, target)
        )

    async def _fetch_into_cache(self, package: ResolvedPackage, target: Path) -> Path:
        spec = f"{package.name}@{package.version}"
        if await asyncio.to_thread(target.is_dir):
            return target
        if not package.tarball:
            raise LinkError(spec, "cache", "registry metadata has no tarball URL")

        logger.info("Fetching %s into package cache", spec)
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self.settings.timeout,
                follow_redirects=True,
            ) as client:
                resp = await client.get(package.tarball)
                resp.raise_for_status()
                data = resp.content
        except httpx.HTTPError as e:
            raise LinkError(spec, "download", e) from e

        shasum = (package.package.get("dist") or {}).get("shasum")
        if shasum and hashlib.sha1(data).hexdigest() != shasum:
            raise LinkError(spec, "verify", f"shasum mismatch, expected {shasum}")

        await asyncio.to_thread(_extract_tarball, data, target, spec)
        return target

    # -- install tree -----------------------------------------------------------

    async def link_tree(self, install_dir: Path, root: DependencyNode) -> None:
        """Mirror every dependency under *root* into ``install_dir/node_modules``."""
        await asyncio.to_thread(self._link_children, Path(install_dir), root)

    def _link_children(self, base: Path, node: DependencyNode) -> None:
        for name in sorted(node.dependencies):
            child = node.dependencies[name]
            dest = base.joinpath(NODE_MODULES, *name.split("/"))
            source = cached_package_dir(self.cache_dir, child.name, child.version)
            if not source.is_dir():
                raise LinkError(f"{child.name}@{child.version}", "link", "package is not in the cache")
            self._mirror(source, dest)
            self._link_children(dest, child)

    def _mirror(self, source: Path, dest: Path) -> None:
        for dirpath, dirnames, filenames in os.walk(source):
            rel = Path(dirpath).relative_to(source)
            target_dir = dest / rel
            target_dir.mkdir(parents=True, exist_ok=True)
            if rel == Path("."):
                # Nested dependencies are linked per install, never from the cache.
                dirnames[:] = [d for d in dirnames if d != NODE_MODULES]
            for filename in filenames:
                self._place(Path(dirpath) / filename, target_dir / filename)

    def _place(self, src: Path, dst: Path) -> None:
        if self.settings.link_mode == "hardlink":
            try:
                os.link(src, dst)
                return
            except FileExistsError:
                return  # another preparer got here first
            except OSError as e:
                if e.errno not in _LINK_FALLBACK_ERRNOS:
                    raise LinkError(str(src), "link", e) from e
                logger.warning("Hard link failed for %s (%s), copying instead", src, e.strerror)
        if dst.exists():
            return
        try:
            shutil.copy2(src, dst)
        except OSError as e:
            raise LinkError(str(src), "copy", e) from e


def _extract_tarball(data: bytes, target: Path, spec: str) -> None:
    """Extract an npm tarball into *target*, atomically by rename."""
    parent = target.parent
    parent.mkdir(parents=True, exist_ok=True)
    staging = Path(tempfile.mkdtemp(prefix=".fetch-", dir=parent))
    contents = staging / "contents"
    try:
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
                tar.extractall(contents, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise LinkError(spec, "extract", e) from e

        entries = list(contents.iterdir()) if contents.is_dir() else []
        # npm packs everything under one top-level directory, usually "package".
        if len(entries) == 1 and entries[0].is_dir():
            extracted = entries[0]
        else:
            contents.mkdir(exist_ok=True)
            extracted = contents

        try:
            extracted.rename(target)
        except OSError as e:
            if not target.is_dir():
                raise LinkError(spec, "cache", e) from e
            logger.debug("%s was cached concurrently", spec)
    finally:
        shutil.rmtree(staging, ignore_errors=True)
