"""Browserify adapter driven through its command-line interface."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

from bundle_cache.bundler.models import ModuleSpec
from bundle_cache.config.models import BundlerSettings
from bundle_cache.errors import BundleError

logger = logging.getLogger(__name__)


def options_to_flags(options: Mapping[str, Any] | None) -> list[str]:
    """Map bundler options onto long CLI flags.

    ``True`` becomes a bare flag, ``False``/``None`` are dropped and lists
    repeat the flag once per item.
    """
    flags: list[str] = []
    for key in sorted(options or {}):
        value = options[key]
        flag = f"--{key}"
        if value is None or value is False:
            continue
        if value is True:
            flags.append(flag)
        elif isinstance(value, (list, tuple)):
            for item in value:
                flags.extend([flag, str(item)])
        else:
            flags.extend([flag, str(value)])
    return flags


def build_arguments(modules: Sequence[ModuleSpec], options: Mapping[str, Any] | None) -> list[str]:
    args: list[str] = []
    basedir = next((m.basedir for m in modules if m.basedir), None)
    if basedir is None and modules:
        basedir = str(modules[0].path.parent)
    if basedir:
        args.extend(["--basedir", basedir])
    for module in modules:
        if module.expose is not None:
            args.extend(["-r", f"{module.path}:{module.expose}"])
    for module in modules:
        if module.entry:
            args.append(str(module.path))
    args.extend(options_to_flags(options))
    return args


class BrowserifyBundler:
    """Runs the browserify executable and streams its stdout."""

    def __init__(self, settings: BundlerSettings | None = None) -> None:
        self.settings = settings or BundlerSettings()

    async def bundle(
        self,
        modules: Sequence[ModuleSpec],
        options: Mapping[str, Any] | None = None,
    ) -> AsyncIterator[bytes]:
        argv = [*self.settings.command, *build_arguments(modules, options)]
        logger.debug("Running bundler: %s", " ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise BundleError(f"cannot start bundler {self.settings.command[0]!r}: {e}") from e

        # Drain stderr concurrently so a chatty bundler cannot block on a full pipe.
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        try:
            while True:
                chunk = await proc.stdout.read(self.settings.chunk_size)
                if not chunk:
                    break
                yield chunk
            returncode = await proc.wait()
            stderr = (await stderr_task).decode("utf-8", errors="replace")
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            if not stderr_task.done():
                stderr_task.cancel()

        if returncode != 0:
            raise BundleError("bundler failed", returncode=returncode, stderr=stderr)
