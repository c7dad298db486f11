"""Tests for BundleCache: hits, rebuilds, single-flight builds and failures."""

from __future__ import annotations

import asyncio

import pytest

from bundle_cache.cache import BundleCache, DependencyPreparer
from bundle_cache.digest import bundle_path, digest_source_set
from bundle_cache.errors import BundleError, ResolutionError
from bundle_cache.storage import FilesystemArtifactStore, MemoryArtifactStore

from conftest import FakeBundler, FakeResolver, collect

EXPECTED = b'(function(){\nrequire("tape")\n})();\n'


def _artifacts(root):
    return sorted(root.rglob("bundle-*.js"))


# ── Cache hits and misses ─────────────────────────────────────────────


class TestCacheHits:
    @pytest.mark.asyncio
    async def test_first_request_builds(self, fs_cache, fake_bundler, sample_manifest, sample_sources):
        assert await collect(fs_cache(sample_manifest, sample_sources)) == EXPECTED
        assert len(fake_bundler.calls) == 1

    @pytest.mark.asyncio
    async def test_repeat_request_is_served_from_cache(
        self, fs_cache, fake_bundler, fake_linker, sample_manifest, sample_sources
    ):
        first = await collect(fs_cache(sample_manifest, sample_sources))
        second = await collect(fs_cache(sample_manifest, sample_sources))
        assert first == second == EXPECTED
        assert len(fake_bundler.calls) == 1
        assert len(fake_linker.linked) == 1

    @pytest.mark.asyncio
    async def test_single_artifact_on_disk(self, fs_cache, bundle_root, sample_manifest, sample_sources):
        await collect(fs_cache(sample_manifest, sample_sources))
        await collect(fs_cache(sample_manifest, sample_sources))
        artifacts = _artifacts(bundle_root)
        assert len(artifacts) == 1
        assert artifacts[0].read_bytes() == EXPECTED

    @pytest.mark.asyncio
    async def test_source_change_rebuilds_in_same_install(
        self, fs_cache, fake_bundler, fake_linker, bundle_root, sample_manifest
    ):
        await collect(fs_cache(sample_manifest, {"./index.js": {"source": "a", "options": {"entry": True}}}))
        out = await collect(fs_cache(sample_manifest, {"./index.js": {"source": "b", "options": {"entry": True}}}))
        assert out == b"(function(){\nb\n})();\n"
        assert len(fake_bundler.calls) == 2
        assert len(fake_linker.linked) == 1
        assert len(_artifacts(bundle_root)) == 2

    @pytest.mark.asyncio
    async def test_options_are_part_of_the_key(
        self, fs_cache, fake_bundler, bundle_root, sample_manifest, sample_sources
    ):
        await collect(fs_cache(sample_manifest, sample_sources))
        await collect(fs_cache(sample_manifest, sample_sources, {"debug": True}))
        await collect(fs_cache(sample_manifest, sample_sources, {"debug": True}))
        assert [opts for _, opts in fake_bundler.calls] == [{}, {"debug": True}]
        assert len(_artifacts(bundle_root)) == 2

    @pytest.mark.asyncio
    async def test_accepts_plain_dict_manifest(self, memory_cache, sample_sources):
        manifest = {"name": "my-pkg", "version": "1.0.0", "dependencies": {"tape": "latest"}}
        assert await collect(memory_cache(manifest, sample_sources)) == EXPECTED
        assert len(memory_cache.store) == 1


# ── Source materialization ────────────────────────────────────────────


class TestMaterialize:
    @pytest.mark.asyncio
    async def test_sources_written_beside_install(
        self, fs_cache, fake_bundler, preparer, sample_manifest
    ):
        sources = {
            "./index.js": {"source": 'require("./lib/util")', "options": {"entry": True}},
            "./lib/util.js": {"source": "module.exports = 1"},
        }
        await collect(fs_cache(sample_manifest, sources))

        prepared = await preparer.prepare(sample_manifest)
        src_dir = bundle_path(prepared.path, digest_source_set(sources))
        assert (src_dir / "lib" / "util.js").read_text() == "module.exports = 1"

        modules, _ = fake_bundler.calls[0]
        assert [m.path for m in modules] == [src_dir / "index.js", src_dir / "lib" / "util.js"]
        assert (modules[0].entry, modules[0].expose) == (True, None)
        assert (modules[1].entry, modules[1].expose) == (False, "./lib/util.js")

    @pytest.mark.asyncio
    async def test_escaping_path_rejected(self, fs_cache, fake_bundler, bundle_root, sample_manifest):
        with pytest.raises(ValueError, match="escapes"):
            await collect(fs_cache(sample_manifest, {"../evil.js": {"source": "x"}}))
        assert fake_bundler.calls == []
        assert not (bundle_root / "evil.js").exists()

    @pytest.mark.asyncio
    async def test_two_keys_for_one_file_rejected(self, fs_cache, fake_bundler, bundle_root, sample_manifest):
        sources = {
            "./index.js": {"source": "first", "options": {"entry": True}},
            "index.js": {"source": "second"},
        }
        with pytest.raises(ValueError, match="name the same file"):
            await collect(fs_cache(sample_manifest, sources))
        assert fake_bundler.calls == []
        assert list(bundle_root.rglob("index.js")) == []

    @pytest.mark.asyncio
    async def test_source_cannot_shadow_an_artifact(self, fs_cache, fake_bundler, sample_manifest):
        sources = {"./bundle-0123456789ab.js": {"source": "x", "options": {"entry": True}}}
        with pytest.raises(ValueError, match="reserved"):
            await collect(fs_cache(sample_manifest, sources))
        assert fake_bundler.calls == []


# ── Concurrency ───────────────────────────────────────────────────────


class TestSingleFlightBuilds:
    @pytest.mark.asyncio
    async def test_concurrent_requests_build_once(
        self, preparer, bundle_root, sample_manifest, sample_sources
    ):
        bundler = FakeBundler(delay=0.05)
        cache = BundleCache(preparer, bundler, FilesystemArtifactStore(bundle_root))

        results = await asyncio.gather(
            *(collect(cache(sample_manifest, sample_sources)) for _ in range(5))
        )

        assert results == [EXPECTED] * 5
        assert len(bundler.calls) == 1
        assert len(_artifacts(bundle_root)) == 1

    @pytest.mark.asyncio
    async def test_abandoned_stream_still_completes_build(
        self, preparer, sample_manifest, sample_sources
    ):
        bundler = FakeBundler(delay=0.05)
        store = MemoryArtifactStore()
        cache = BundleCache(preparer, bundler, store)

        stream = cache(sample_manifest, sample_sources)
        assert await anext(stream) == b"(function(){\n"
        await stream.aclose()

        assert await collect(cache(sample_manifest, sample_sources)) == EXPECTED
        assert len(bundler.calls) == 1
        assert store.puts == 1


# ── Failures ──────────────────────────────────────────────────────────


class TestFailures:
    @pytest.mark.asyncio
    async def test_bundler_failure_stores_nothing(
        self, preparer, bundle_root, sample_manifest, sample_sources
    ):
        bundler = FakeBundler(fail_after_first_chunk=True)
        cache = BundleCache(preparer, bundler, FilesystemArtifactStore(bundle_root))

        with pytest.raises(BundleError, match="exit 1"):
            await collect(cache(sample_manifest, sample_sources))
        assert _artifacts(bundle_root) == []
        assert not list(bundle_root.rglob("*.tmp"))

        bundler.fail_after_first_chunk = False
        assert await collect(cache(sample_manifest, sample_sources)) == EXPECTED
        assert len(bundler.calls) == 2

    @pytest.mark.asyncio
    async def test_every_waiter_sees_the_build_error(self, preparer, sample_manifest, sample_sources):
        bundler = FakeBundler(delay=0.05, fail_after_first_chunk=True)
        store = MemoryArtifactStore()
        cache = BundleCache(preparer, bundler, store)

        results = await asyncio.gather(
            *(collect(cache(sample_manifest, sample_sources)) for _ in range(3)),
            return_exceptions=True,
        )

        assert all(isinstance(r, BundleError) for r in results)
        assert len(bundler.calls) == 1
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_errors_surface_while_iterating(
        self, tape_tree, fake_linker, fake_bundler, bundle_root, sample_manifest, sample_sources
    ):
        resolver = FakeResolver(tape_tree, fail_with=ResolutionError("tape", "latest", "package not found"))
        preparer = DependencyPreparer(resolver, fake_linker, bundle_root)
        cache = BundleCache(preparer, fake_bundler, MemoryArtifactStore())

        stream = cache(sample_manifest, sample_sources)
        assert resolver.calls == 0

        with pytest.raises(ResolutionError, match="package not found"):
            await collect(stream)
        assert fake_bundler.calls == []
