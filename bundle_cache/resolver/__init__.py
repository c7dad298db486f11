"""Dependency resolution: manifest models, the arena and the npm resolver."""

from bundle_cache.resolver.models import (
    DependencyArena,
    DependencyNode,
    Manifest,
    ResolvedPackage,
)
from bundle_cache.resolver.npm import NpmRegistryResolver, packument_url, pick_version

__all__ = [
    "DependencyArena",
    "DependencyNode",
    "Manifest",
    "NpmRegistryResolver",
    "ResolvedPackage",
    "packument_url",
    "pick_version",
]
