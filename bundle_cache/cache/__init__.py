"""Dependency preparation and the bundle cache manager."""

from bundle_cache.cache.manager import BundleCache
from bundle_cache.cache.preparer import DependencyPreparer, PreparedInstall, first_error

__all__ = [
    "BundleCache",
    "DependencyPreparer",
    "PreparedInstall",
    "first_error",
]
