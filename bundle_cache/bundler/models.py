"""Models for the source files handed to a bundler."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class ModuleOptions(BaseModel):
    """Per-file bundler flags supplied by the caller."""

    model_config = ConfigDict(frozen=True)

    entry: bool = False
    expose: str | None = None
    basedir: str | None = None


class SourceFile(BaseModel):
    """Raw text of one source file plus its bundler flags."""

    model_config = ConfigDict(frozen=True)

    source: str
    options: ModuleOptions | None = None


@dataclass(frozen=True)
class ModuleSpec:
    """A materialized file registered with the bundler."""

    path: Path
    entry: bool = False
    expose: str | None = None
    basedir: str | None = None

    @classmethod
    def for_source(cls, path: Path, relative_path: str, source: SourceFile) -> ModuleSpec:
        """Apply the caller's options, exposing the file under its own path by default."""
        opts = source.options or ModuleOptions()
        expose = opts.expose
        if expose is None and not opts.entry:
            expose = relative_path
        return cls(path=path, entry=opts.entry, expose=expose, basedir=opts.basedir)
