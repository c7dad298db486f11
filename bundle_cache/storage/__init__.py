"""Artifact store backends."""

from bundle_cache.storage.filesystem import FilesystemArtifactStore
from bundle_cache.storage.memory import MemoryArtifactStore

__all__ = ["FilesystemArtifactStore", "MemoryArtifactStore"]
