"""Exceptions raised by the bundle cache and its adapters."""

from __future__ import annotations


class BundleCacheError(Exception):
    """Base class for every error surfaced by a bundle cache stream."""


class ResolutionError(BundleCacheError):
    """A dependency range could not be resolved against the registry."""

    def __init__(
        self,
        name: str,
        version_range: str,
        reason: str,
        cause: Exception | None = None,
    ) -> None:
        self.name = name
        self.version_range = version_range
        self.reason = reason
        super().__init__(f"cannot resolve {name}@{version_range!r}: {reason}")
        if cause is not None:
            self.__cause__ = cause


class LinkError(BundleCacheError):
    """Wraps failures while caching or linking an installed package."""

    def __init__(self, package: str, operation: str, cause: Exception | str) -> None:
        self.package = package
        self.operation = operation
        super().__init__(f"{operation} failed for {package}: {cause}")
        if isinstance(cause, Exception):
            self.__cause__ = cause


class BundleError(BundleCacheError):
    """The bundler could not be started or exited unsuccessfully."""

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        self.returncode = returncode
        self.stderr = stderr
        detail = f" (exit {returncode})" if returncode is not None else ""
        tail = f": {stderr.strip()[:500]}" if stderr.strip() else ""
        super().__init__(f"{message}{detail}{tail}")
