"""npm registry resolver using httpx and semantic versioning."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import quote

import httpx
import semantic_version

from bundle_cache.config.models import ResolverSettings
from bundle_cache.errors import ResolutionError
from bundle_cache.resolver.models import Manifest, ResolvedPackage

logger = logging.getLogger(__name__)

# Abbreviated metadata: versions, dist and dependencies only.
_ACCEPT = "application/vnd.npm.install-v1+json; q=1.0, application/json; q=0.8"


def packument_url(registry_url: str, name: str) -> str:
    """Registry URL for a package; scoped names keep the @ but encode the slash."""
    return f"{registry_url.rstrip('/')}/{quote(name, safe='@')}"


def pick_version(packument: dict[str, Any], name: str, version_range: str) -> str:
    """Select the version a range resolves to.

    Dist-tags win over ranges; otherwise the highest version satisfying the
    npm range is chosen. Raises ResolutionError when nothing matches.
    """
    tags = packument.get("dist-tags") or {}
    versions = packument.get("versions") or {}
    wanted = version_range.strip()

    if wanted in tags:
        return tags[wanted]

    try:
        spec = semantic_version.NpmSpec(wanted or "*")
    except ValueError as e:
        raise ResolutionError(name, version_range, "invalid version range", e) from e

    candidates = []
    for raw in versions:
        try:
            candidates.append(semantic_version.Version(raw))
        except ValueError:
            continue  # skip non-semver publishes

    best = spec.select(candidates)
    if best is None:
        raise ResolutionError(name, version_range, "no matching version")
    return str(best)


class NpmRegistryResolver:
    """Resolver that walks the npm registry breadth-first.

    Produces a nested (non-hoisted) tree: a dependency is emitted under its
    dependent unless an ancestor with the same name already satisfies the
    range, in which case module lookup will find the ancestor's copy.
    """

    def __init__(
        self,
        settings: ResolverSettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or ResolverSettings()
        self._transport = transport

    async def resolve(self, manifest: Manifest) -> AsyncIterator[ResolvedPackage]:
        packuments: dict[str, dict[str, Any]] = {}
        next_id = 0
        # (name, range, parent id, ancestor chain of (name, version))
        queue: deque[tuple[str, str, int | None, tuple[tuple[str, str], ...]]] = deque(
            (name, manifest.dependencies[name], None, ())
            for name in sorted(manifest.dependencies)
        )

        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self.settings.timeout,
            headers={"Accept": _ACCEPT},
            follow_redirects=True,
        ) as client:
            while queue:
                name, version_range, parent_id, ancestors = queue.popleft()
                if name not in packuments:
                    packuments[name] = await self._fetch(client, name, version_range)
                packument = packuments[name]
                version = pick_version(packument, name, version_range)

                if _satisfied_by_ancestor(ancestors, name, version_range, version):
                    logger.debug("%s@%s already provided by an ancestor", name, version_range)
                    continue

                meta = (packument.get("versions") or {}).get(version)
                if meta is None:
                    raise ResolutionError(name, version_range, f"version {version} missing from registry")
                dist = meta.get("dist") or {}
                record = ResolvedPackage(
                    id=next_id,
                    parent_id=parent_id,
                    name=name,
                    version=version,
                    version_range=version_range,
                    package=meta,
                    checksum=dist.get("integrity") or dist.get("shasum"),
                    tarball=dist.get("tarball"),
                )
                next_id += 1
                yield record

                chain = ancestors + ((name, version),)
                deps = meta.get("dependencies") or {}
                for dep_name in sorted(deps):
                    queue.append((dep_name, deps[dep_name], record.id, chain))

    async def _fetch(
        self, client: httpx.AsyncClient, name: str, version_range: str
    ) -> dict[str, Any]:
        url = packument_url(self.settings.registry_url, name)
        logger.debug("Fetching packument %s", url)
        try:
            resp = await client.get(url)
        except httpx.HTTPError as e:
            raise ResolutionError(name, version_range, "registry request failed", e) from e
        if resp.status_code == 404:
            raise ResolutionError(name, version_range, "package not found")
        try:
            resp.raise_for_status()
            return resp.json()
        except (httpx.HTTPStatusError, ValueError) as e:
            raise ResolutionError(name, version_range, "bad registry response", e) from e


def _satisfied_by_ancestor(
    ancestors: tuple[tuple[str, str], ...],
    name: str,
    version_range: str,
    version: str,
) -> bool:
    # name@version already on the chain is a cycle, at any depth.
    if (name, version) in ancestors:
        return True
    for anc_name, anc_version in reversed(ancestors):
        if anc_name != name:
            continue
        try:
            return semantic_version.Version(anc_version) in semantic_version.NpmSpec(version_range or "*")
        except ValueError:
            return False
    return False
