"""Artifact storage plugin interface and key model."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict


class BundleKey(BaseModel):
    """Addresses one cached bundle artifact."""

    model_config = ConfigDict(frozen=True)

    install_digest: str
    source_digest: str
    options_digest: str

    def __str__(self) -> str:
        return f"{self.install_digest}/{self.source_digest}/{self.options_digest[:12]}"


@runtime_checkable
class ArtifactStore(Protocol):
    """Durable key-value storage for bundle artifacts."""

    async def get(self, key: BundleKey) -> AsyncIterator[bytes] | None: ...

    def put(self, key: BundleKey, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]: ...
