"""Shared package cache and install-tree linking."""

from bundle_cache.linker.filesystem import FilesystemLinker, cached_package_dir

__all__ = ["FilesystemLinker", "cached_package_dir"]
