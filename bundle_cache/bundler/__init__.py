"""Bundler adapters and the module models they consume."""

from bundle_cache.bundler.browserify import BrowserifyBundler, build_arguments, options_to_flags
from bundle_cache.bundler.models import ModuleOptions, ModuleSpec, SourceFile

__all__ = [
    "BrowserifyBundler",
    "ModuleOptions",
    "ModuleSpec",
    "SourceFile",
    "build_arguments",
    "options_to_flags",
]
