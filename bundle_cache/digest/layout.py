"""On-disk layout for install and bundle directories."""

from __future__ import annotations

import re
from pathlib import Path, PurePosixPath

BUNDLE_SUBDIR = "package"
INSTALLED_MARKER = ".installed"

# Names the artifact store owns beside the materialized sources.
_RESERVED_NAME = re.compile(r"bundle-[0-9a-f]{12}\.js|\.bundle-.*\.tmp")


def install_path(
    root: Path,
    digest: str,
    prefix_length: int = 6,
    segment_length: int = 2,
) -> Path:
    """Shard *digest* under *root*: ``root/aa/bb/cc/<rest>``.

    The prefix is split into fixed-width segments to keep directory fan-out
    bounded as the cache grows.
    """
    if prefix_length % segment_length:
        raise ValueError(
            f"prefix length {prefix_length} is not a multiple of segment length {segment_length}"
        )
    if len(digest) <= prefix_length:
        raise ValueError(f"digest too short to shard: {digest!r}")
    segments = [
        digest[i : i + segment_length] for i in range(0, prefix_length, segment_length)
    ]
    return Path(root).joinpath(*segments, digest[prefix_length:])


def bundle_path(install_dir: Path, source_digest: str) -> Path:
    """Directory holding the materialized sources and artifacts for one source set."""
    return Path(install_dir) / BUNDLE_SUBDIR / source_digest


def artifact_name(options_digest: str) -> str:
    return f"bundle-{options_digest[:12]}.js"


def source_destination(bundle_dir: Path, relative_path: str) -> Path:
    """Resolve a caller-chosen relative path beneath *bundle_dir*.

    Raises ValueError for absolute paths, paths escaping the directory and
    top-level names reserved for artifacts.
    """
    rel = PurePosixPath(relative_path.replace("\\", "/"))
    if rel.is_absolute():
        raise ValueError(f"source path must be relative: {relative_path!r}")
    dest = Path(bundle_dir).joinpath(*rel.parts)
    base = Path(bundle_dir).resolve()
    if not dest.resolve().is_relative_to(base) or dest.resolve() == base:
        raise ValueError(f"source path escapes bundle directory: {relative_path!r}")
    if dest.parent.resolve() == base and _RESERVED_NAME.fullmatch(dest.name):
        raise ValueError(f"source path is reserved for bundle artifacts: {relative_path!r}")
    return dest
