"""YAML config loading with env var expansion."""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .models import BundleCacheConfig

logger = logging.getLogger(__name__)

PROJECT_CONFIG = Path("bundle-cache.yaml")
USER_CONFIG = Path(".bundle-cache") / "config.yaml"

# ${VAR} or ${VAR:-fallback}
_ENV_REF = re.compile(r"\$\{(\w+)(?::-([^}]*))?\}")

# Directory settings that are anchored to the config file's location.
_PATH_KEYS = ("cache_dir", "bundle_dir")


def load_config(cli_path: str | None = None) -> BundleCacheConfig:
    """Load config with resolution order: explicit > project-local > user-global > defaults.

    An explicit path must exist; if it is empty the defaults apply and no
    other location is consulted. Empty implicit files are skipped. Relative
    ``cache_dir``/``bundle_dir`` values are resolved against the directory of
    the file that sets them.
    """
    if cli_path:
        path = Path(cli_path)
        if not path.is_file():
            raise ValueError(f"Config file not found: {path}")
        raw = _read(path)
        return BundleCacheConfig() if raw is None else _build(path, raw)

    for path in (PROJECT_CONFIG, Path.home() / USER_CONFIG):
        if not path.is_file():
            continue
        raw = _read(path)
        if raw is None:
            logger.debug("Skipping empty config %s", path)
            continue
        return _build(path, raw)

    return BundleCacheConfig()


def _read(path: Path) -> dict[str, Any] | None:
    try:
        with open(path) as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    if raw is not None and not isinstance(raw, dict):
        raise ValueError(
            f"Invalid config in {path}: expected a mapping at the top level, got {type(raw).__name__}"
        )
    return raw


def _build(path: Path, raw: dict[str, Any]) -> BundleCacheConfig:
    data = _expand_env_vars(raw)
    base = path.resolve().parent
    for key in _PATH_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value:
            resolved = Path(value).expanduser()
            data[key] = str(resolved if resolved.is_absolute() else base / resolved)
    try:
        config = BundleCacheConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid config in {path}: {e}") from e
    logger.debug("Loaded config from %s", path)
    return config


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} and ${VAR:-fallback} references in strings."""
    if isinstance(obj, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1)) or m.group(2) or "", obj)
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj
