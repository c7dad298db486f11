"""Linker plugin interface."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from bundle_cache.resolver.models import DependencyNode, ResolvedPackage


@runtime_checkable
class Linker(Protocol):
    """Places packages in a shared cache and links them into install trees."""

    async def cache_package(self, package: ResolvedPackage) -> Path: ...

    async def link_tree(self, install_dir: Path, root: DependencyNode) -> None: ...
