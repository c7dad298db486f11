"""Bundle Cache - content-addressed caching for dependency installs and JS bundles."""

from pathlib import Path

from bundle_cache.bundler import BrowserifyBundler, ModuleOptions, ModuleSpec, SourceFile
from bundle_cache.cache import BundleCache, DependencyPreparer, PreparedInstall
from bundle_cache.config import BundleCacheConfig, load_config
from bundle_cache.errors import BundleCacheError, BundleError, LinkError, ResolutionError
from bundle_cache.interfaces import ArtifactStore, Bundler, BundleKey, Linker, Resolver
from bundle_cache.linker import FilesystemLinker
from bundle_cache.resolver import DependencyNode, Manifest, NpmRegistryResolver, ResolvedPackage
from bundle_cache.storage import FilesystemArtifactStore, MemoryArtifactStore

__version__ = "0.1.0"


def create_cache(
    config: BundleCacheConfig | None = None,
    *,
    resolver: Resolver | None = None,
    linker: Linker | None = None,
    bundler: Bundler | None = None,
    store: ArtifactStore | None = None,
) -> BundleCache:
    """Bind configuration once and return the cache entry point.

    Collaborators not passed explicitly are built from *config*: the npm
    registry resolver, the filesystem linker over ``cache_dir``, the
    browserify bundler and a filesystem store over ``bundle_dir``.
    """
    config = config or BundleCacheConfig()
    bundle_dir = Path(config.bundle_dir)
    preparer = DependencyPreparer(
        resolver=resolver or NpmRegistryResolver(config.resolver),
        linker=linker or FilesystemLinker(config.cache_dir, config.linker),
        bundle_dir=bundle_dir,
        settings=config.digest,
        memo_ttl=config.resolver.memo_ttl,
    )
    return BundleCache(
        preparer=preparer,
        bundler=bundler or BrowserifyBundler(config.bundler),
        store=store or FilesystemArtifactStore(bundle_dir, config.digest),
    )


__all__ = [
    "ArtifactStore",
    "BrowserifyBundler",
    "BundleCache",
    "BundleCacheConfig",
    "BundleCacheError",
    "BundleError",
    "BundleKey",
    "Bundler",
    "DependencyNode",
    "DependencyPreparer",
    "FilesystemArtifactStore",
    "FilesystemLinker",
    "LinkError",
    "Linker",
    "Manifest",
    "MemoryArtifactStore",
    "ModuleOptions",
    "ModuleSpec",
    "NpmRegistryResolver",
    "PreparedInstall",
    "ResolutionError",
    "ResolvedPackage",
    "Resolver",
    "SourceFile",
    "create_cache",
    "load_config",
]
