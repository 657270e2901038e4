"""
Error taxonomy for the cache pipeline.

Every stage wraps the library errors it sees into one of these, so callers
(and the HTTP layer) can tell which stage of a cycle failed.
"""
from __future__ import annotations


class NixDataError(Exception):
    """Base class for all pipeline errors."""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ResolveError(NixDataError):
    """The remote version could not be determined."""

    code = "RESOLVE_ERROR"


class FetchError(NixDataError):
    """The remote index document could not be downloaded."""

    code = "FETCH_ERROR"


class DecodeError(NixDataError):
    """The downloaded index document is malformed."""

    code = "DECODE_ERROR"


class StoreError(NixDataError):
    """Schema creation, connection or bulk load failed."""

    code = "STORE_ERROR"


class SubprocessError(StoreError):
    """The external bulk-import process failed to start or exited abnormally."""

    code = "SUBPROCESS_ERROR"

    def __init__(self, message: str, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ConfigReadError(NixDataError):
    """A declaration source could not be read or parsed."""

    code = "CONFIG_READ_ERROR"
