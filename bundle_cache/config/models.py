from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ResolverSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    registry_url: str = "https://registry.npmjs.org"
    timeout: float = Field(default=30.0, gt=0)
    memo_ttl: float = Field(default=300.0, ge=0)


class LinkerSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    link_mode: Literal["hardlink", "copy"] = "hardlink"
    timeout: float = Field(default=60.0, gt=0)


class BundlerSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    command: list[str] = Field(default_factory=lambda: ["browserify"], min_length=1)
    chunk_size: int = Field(default=65536, gt=0)


class DigestSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    policy: Literal["checksum", "version"] = "checksum"
    shard_prefix_length: int = Field(default=6, gt=0)
    shard_segment_length: int = Field(default=2, gt=0)


class BundleCacheConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    cache_dir: str = ".bundle-cache/packages"
    bundle_dir: str = ".bundle-cache/bundles"
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    linker: LinkerSettings = Field(default_factory=LinkerSettings)
    bundler: BundlerSettings = Field(default_factory=BundlerSettings)
    digest: DigestSettings = Field(default_factory=DigestSettings)
