from .loader import load_config
from .models import (
    BundleCacheConfig,
    BundlerSettings,
    DigestSettings,
    LinkerSettings,
    ResolverSettings,
)

__all__ = [
    "BundleCacheConfig",
    "BundlerSettings",
    "DigestSettings",
    "LinkerSettings",
    "ResolverSettings",
    "load_config",
]
