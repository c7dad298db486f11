"""Shared test fixtures for the bundle cache."""

from __future__ import annotations

import asyncio
import io
import tarfile
from pathlib import Path

import pytest

from bundle_cache.bundler.models import ModuleSpec
from bundle_cache.cache import BundleCache, DependencyPreparer
from bundle_cache.config.models import DigestSettings
from bundle_cache.errors import BundleError
from bundle_cache.resolver.models import DependencyNode, Manifest, ResolvedPackage
from bundle_cache.storage import FilesystemArtifactStore, MemoryArtifactStore


class FakeResolver:
    """Emits a fixed list of records per package name found in the manifest."""

    def __init__(self, trees: dict[str, list[ResolvedPackage]], fail_with: Exception | None = None):
        self.trees = trees
        self.fail_with = fail_with
        self.calls = 0

    async def resolve(self, manifest: Manifest):
        self.calls += 1
        next_id = 0
        for name in manifest.dependencies:
            offset = next_id
            for rec in self.trees[name]:
                parent = None if rec.parent_id is None else rec.parent_id + offset
                yield rec.model_copy(update={"id": rec.id + offset, "parent_id": parent})
                next_id = max(next_id, rec.id + offset + 1)
                await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with


class FakeLinker:
    def __init__(self, fail_on: set[str] | None = None):
        self.cached: list[tuple[str, str]] = []
        self.linked: list[Path] = []
        self.fail_on = fail_on or set()

    async def cache_package(self, package: ResolvedPackage) -> Path:
        await asyncio.sleep(0)
        if package.name in self.fail_on:
            raise OSError(f"cannot cache {package.name}")
        self.cached.append((package.name, package.version))
        return Path("/cache") / package.name / package.version

    async def link_tree(self, install_dir: Path, root: DependencyNode) -> None:
        await asyncio.sleep(0.01)
        (install_dir / "node_modules").mkdir(exist_ok=True)
        self.linked.append(install_dir)


class FakeBundler:
    """Concatenates the materialized module files, optionally slowly or failing."""

    def __init__(self, delay: float = 0.0, fail_after_first_chunk: bool = False):
        self.delay = delay
        self.fail_after_first_chunk = fail_after_first_chunk
        self.calls: list[tuple[list[ModuleSpec], dict]] = []

    async def bundle(self, modules, options=None):
        self.calls.append((list(modules), dict(options or {})))
        yield b"(function(){\n"
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_after_first_chunk:
            raise BundleError("bundler failed", returncode=1, stderr="SyntaxError")
        for module in modules:
            yield module.path.read_bytes() + b"\n"
        yield b"})();\n"


def record(id: int, name: str, version: str, parent_id: int | None = None, **extra) -> ResolvedPackage:
    return ResolvedPackage(
        id=id,
        parent_id=parent_id,
        name=name,
        version=version,
        version_range=extra.pop("version_range", f"^{version}"),
        **extra,
    )


def make_tarball(name: str, version: str, files: dict[str, str] | None = None) -> bytes:
    """Build an npm-style tarball with everything under ``package/``."""
    files = files or {
        "package.json": f'{{"name": "{name}", "version": "{version}"}}',
        "index.js": f"module.exports = '{name}@{version}';",
        "lib/util.js": "module.exports = {};",
    }
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for rel, text in files.items():
            data = text.encode()
            info = tarfile.TarInfo(f"package/{rel}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


async def collect(stream) -> bytes:
    chunks = [chunk async for chunk in stream]
    return b"".join(chunks)


@pytest.fixture
def tape_tree() -> dict[str, list[ResolvedPackage]]:
    return {
        "tape": [
            record(0, "tape", "5.0.0", checksum="sha512-tape"),
            record(1, "deep-equal", "2.2.3", parent_id=0, checksum="sha512-deq"),
            record(2, "minimist", "1.2.8", parent_id=0),
        ],
        "minimist": [record(0, "minimist", "1.2.8")],
    }


@pytest.fixture
def sample_manifest() -> Manifest:
    return Manifest(name="my-pkg", version="0.0.0", dependencies={"tape": "latest"})


@pytest.fixture
def sample_sources() -> dict:
    return {
        "./index.js": {"source": 'require("tape")', "options": {"entry": True}},
    }


@pytest.fixture
def fake_resolver(tape_tree) -> FakeResolver:
    return FakeResolver(tape_tree)


@pytest.fixture
def fake_linker() -> FakeLinker:
    return FakeLinker()


@pytest.fixture
def fake_bundler() -> FakeBundler:
    return FakeBundler()


@pytest.fixture
def bundle_root(tmp_path) -> Path:
    return tmp_path / "bundles"


@pytest.fixture
def preparer(fake_resolver, fake_linker, bundle_root) -> DependencyPreparer:
    return DependencyPreparer(fake_resolver, fake_linker, bundle_root, DigestSettings())


@pytest.fixture
def fs_cache(preparer, fake_bundler, bundle_root) -> BundleCache:
    return BundleCache(preparer, fake_bundler, FilesystemArtifactStore(bundle_root))


@pytest.fixture
def memory_cache(preparer, fake_bundler) -> BundleCache:
    return BundleCache(preparer, fake_bundler, MemoryArtifactStore())


@pytest.fixture
def thread_calls(monkeypatch) -> list[str]:
    """Names of the callables handed to ``asyncio.to_thread`` during a test."""
    seen: list[str] = []
    real = asyncio.to_thread

    async def recording(func, /, *args, **kwargs):
        seen.append(getattr(func, "__name__", repr(func)))
        return await real(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording)
    return seen
