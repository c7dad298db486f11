"""Resolver plugin interface."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from bundle_cache.resolver.models import Manifest, ResolvedPackage


@runtime_checkable
class Resolver(Protocol):
    """Turns a manifest into a stream of resolved packages.

    The stream ends exactly once: either exhausted or by raising.
    """

    def resolve(self, manifest: Manifest) -> AsyncIterator[ResolvedPackage]: ...
