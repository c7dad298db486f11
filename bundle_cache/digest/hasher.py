"""Deterministic digests over dependency trees, source sets and bundler options."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any, Literal

from bundle_cache.bundler.models import SourceFile
from bundle_cache.resolver.models import DependencyNode, Manifest

DigestPolicy = Literal["checksum", "version"]

# Bump when the byte layout fed into the hash changes.
DIGEST_FORMAT = "deps-v2"

# Not a legal character in npm package names.
PATH_SEPARATOR = "!"


def compute_hash(content: bytes) -> str:
    """Full SHA-256 hex digest."""
    return hashlib.sha256(content).hexdigest()


def _feed(hasher: Any, *fields: str) -> None:
    # Length-prefixed: source text may itself contain NUL.
    for value in fields:
        data = value.encode("utf-8")
        hasher.update(len(data).to_bytes(8, "big"))
        hasher.update(data)


def _identifier(node: DependencyNode, policy: DigestPolicy) -> str:
    if not node.version:
        raise ValueError(f"dependency {node.name!r} has no resolved version")
    if policy == "checksum" and node.checksum:
        return node.checksum
    return node.version


def digest_dependency_tree(
    dependencies: Mapping[str, DependencyNode],
    policy: DigestPolicy = "checksum",
) -> str:
    """Hash a dependency mapping independent of the order it was resolved in.

    Each node contributes ``(path token, version-or-checksum)`` in pre-order
    with siblings sorted by name. The policy is part of the digest, so the
    two policies never produce the same key for a tree.
    """
    if policy not in ("checksum", "version"):
        raise ValueError(f"unknown digest policy: {policy!r}")
    hasher = hashlib.sha256()
    _feed(hasher, f"{DIGEST_FORMAT}:{policy}")

    def _walk(deps: Mapping[str, DependencyNode], parent: str) -> None:
        for name in sorted(deps):
            node = deps[name]
            token = parent + PATH_SEPARATOR + name
            _feed(hasher, token, _identifier(node, policy))
            _walk(node.dependencies, token)

    _walk(dependencies, "")
    return hasher.hexdigest()


def digest_source_set(sources: Mapping[str, SourceFile | Mapping[str, Any]]) -> str:
    """Hash sorted ``(relative path, source text)`` pairs."""
    hasher = hashlib.sha256()
    for path in sorted(sources):
        entry = sources[path]
        if isinstance(entry, SourceFile):
            text = entry.source
        else:
            text = entry.get("source")
        if not isinstance(text, str):
            raise ValueError(f"source entry {path!r} has no source text")
        _feed(hasher, path, text)
    return hasher.hexdigest()


def digest_options(options: Mapping[str, Any] | None) -> str:
    """Hash bundler options through canonical JSON."""
    canonical = json.dumps(dict(options or {}), sort_keys=True, separators=(",", ":"), default=str)
    return compute_hash(canonical.encode("utf-8"))


def digest_manifest(manifest: Manifest) -> str:
    """Hash the manifest fields that drive resolution."""
    return digest_options(
        {
            "name": manifest.name,
            "version": manifest.version,
            "dependencies": manifest.dependencies,
        }
    )
