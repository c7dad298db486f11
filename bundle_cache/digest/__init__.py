"""Content digests and the sharded directory layout they address."""

from bundle_cache.digest.hasher import (
    DigestPolicy,
    compute_hash,
    digest_dependency_tree,
    digest_manifest,
    digest_options,
    digest_source_set,
)
from bundle_cache.digest.layout import (
    BUNDLE_SUBDIR,
    INSTALLED_MARKER,
    artifact_name,
    bundle_path,
    install_path,
    source_destination,
)

__all__ = [
    "BUNDLE_SUBDIR",
    "DigestPolicy",
    "INSTALLED_MARKER",
    "artifact_name",
    "bundle_path",
    "compute_hash",
    "digest_dependency_tree",
    "digest_manifest",
    "digest_options",
    "digest_source_set",
    "install_path",
    "source_destination",
]
