"""
Refresh Errors - Exception hierarchy for the registry refresh pipeline.

Fatal:
- RegistryTransportError: a remote registry page could not be retrieved
- CacheWriteError: an artifact could not be written

Degrading (caught and counted inside the pipeline):
- PackageInstallError: a plugin package could not be installed or located
- ExtractionError: a single node file yielded no version
- MalformedSchemaError: a property tree is too deep or cyclic
"""

from __future__ import annotations

from typing import Optional


class RegistryRefreshError(Exception):
    """Base class for all refresh errors."""


class RegistryTransportError(RegistryRefreshError):
    """Raised when a registry request fails or returns an unusable body."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class RegistryTimeoutError(RegistryTransportError):
    """Raised when a registry request times out."""

    def __init__(self, message: str, timeout: float, url: str):
        self.timeout = timeout
        super().__init__(message, url=url)


class PackageInstallError(RegistryRefreshError):
    """Raised when npm cannot materialize the plugin packages."""


class ExtractionError(RegistryRefreshError):
    """Raised when a node file cannot be probed."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class MalformedSchemaError(RegistryRefreshError):
    """Raised when a property tree exceeds the allowed nesting depth."""

    def __init__(self, message: str, depth: int):
        self.depth = depth
        super().__init__(message)


class CacheWriteError(RegistryRefreshError):
    """Raised when an artifact cannot be written."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


__all__ = [
    "RegistryRefreshError",
    "RegistryTransportError",
    "RegistryTimeoutError",
    "PackageInstallError",
    "ExtractionError",
    "MalformedSchemaError",
    "CacheWriteError",
]
