"""Plugin interfaces for the external collaborators of the bundle cache."""

from bundle_cache.interfaces.bundler import Bundler
from bundle_cache.interfaces.linker import Linker
from bundle_cache.interfaces.resolver import Resolver
from bundle_cache.interfaces.storage import ArtifactStore, BundleKey

__all__ = [
    "ArtifactStore",
    "Bundler",
    "BundleKey",
    "Linker",
    "Resolver",
]
