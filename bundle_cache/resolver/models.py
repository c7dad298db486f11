"""Data models for manifests and resolved dependency trees."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Manifest(BaseModel):
    """Caller-supplied package.json-like description of the logical package.

    Fields other than name/version/dependencies are kept but never consulted.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    name: str = Field(min_length=1)
    version: str = "0.0.0"
    dependencies: dict[str, str] = Field(default_factory=dict)


class ResolvedPackage(BaseModel):
    """One record emitted by a resolver while it walks the dependency graph."""

    model_config = ConfigDict(frozen=True)

    id: int
    parent_id: int | None = None
    name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    version_range: str = ""
    package: dict[str, Any] = Field(default_factory=dict)
    checksum: str | None = None
    tarball: str | None = None


@dataclass(eq=False)
class DependencyNode:
    """A resolved package and its own resolved dependencies."""

    name: str
    version: str
    version_range: str = ""
    package: dict[str, Any] = field(default_factory=dict, repr=False)
    checksum: str | None = None
    tarball: str | None = None
    parent: DependencyNode | None = field(default=None, repr=False)
    dependencies: dict[str, DependencyNode] = field(default_factory=dict, repr=False)

    @classmethod
    def from_record(cls, record: ResolvedPackage) -> DependencyNode:
        return cls(
            name=record.name,
            version=record.version,
            version_range=record.version_range,
            package=dict(record.package),
            checksum=record.checksum,
            tarball=record.tarball,
        )

    @property
    def path(self) -> tuple[str, ...]:
        """Names from the first dependency below the root down to this node."""
        names: list[str] = []
        node: DependencyNode | None = self
        while node is not None and node.parent is not None:
            names.append(node.name)
            node = node.parent
        return tuple(reversed(names))

    def walk(self):
        """Yield every descendant in pre-order, siblings sorted by name."""
        for name in sorted(self.dependencies):
            child = self.dependencies[name]
            yield child
            yield from child.walk()


class DependencyArena:
    """Collects streamed resolver records and links them into a tree at the end.

    Records may arrive in any order; parent/child linkage is deferred until
    :meth:`finalize` so nothing observes a half-built tree.
    """

    def __init__(self) -> None:
        self._records: dict[int, ResolvedPackage] = {}
        self._finalized = False

    def __len__(self) -> int:
        return len(self._records)

    def add(self, record: ResolvedPackage) -> None:
        if self._finalized:
            raise ValueError("arena already finalized")
        if record.id in self._records:
            raise ValueError(f"duplicate resolver record id {record.id}")
        self._records[record.id] = record

    def finalize(self, manifest: Manifest) -> DependencyNode:
        """Build the tree rooted at *manifest* from every collected record."""
        self._finalized = True
        root = DependencyNode(
            name=manifest.name,
            version=manifest.version,
            version_range=manifest.version,
            package=manifest.model_dump(),
        )
        nodes = {rid: DependencyNode.from_record(rec) for rid, rec in self._records.items()}
        for rid in sorted(self._records):
            record = self._records[rid]
            node = nodes[rid]
            if record.parent_id is None:
                parent = root
            elif record.parent_id in nodes:
                parent = nodes[record.parent_id]
            else:
                raise ValueError(
                    f"{record.name}@{record.version} references unknown parent {record.parent_id}"
                )
            node.parent = parent
            parent.dependencies[node.name] = node
        return root
