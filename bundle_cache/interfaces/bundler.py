"""Bundler plugin interface."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from bundle_cache.bundler.models import ModuleSpec


@runtime_checkable
class Bundler(Protocol):
    """Bundles registered modules into a single byte stream."""

    def bundle(
        self,
        modules: Sequence[ModuleSpec],
        options: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[bytes]: ...
