"""PolyStash error types.

Every provider operation surfaces one of these typed exceptions for any
caller-visible failure. Missing objects (BlobNotFoundError) are always
distinct from rejected paths (AccessDeniedError).
"""

from __future__ import annotations

from pathlib import Path


class PolyStashError(Exception):
    """Base exception for blob store operations.

    Attributes:
        message: Human-readable error message.
        object_name: Object name associated with the operation (if applicable).
        path: Filesystem path associated with the operation (if applicable).
        cause: Underlying exception, when the error wraps one.
    """

    def __init__(
        self,
        message: str,
        *,
        object_name: str | None = None,
        path: str | Path | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.object_name = object_name
        self.path = str(path) if path is not None else None
        self.cause = cause

    def __str__(self) -> str:
        parts = [self.message]
        if self.object_name is not None:
            parts.append(f"object_name={self.object_name}")
        if self.path:
            parts.append(f"path={self.path}")
        return " ".join(parts)


class AccessDeniedError(PolyStashError):
    """Raised when a resolved path escapes the storage root.

    Also raised when a write target already exists and the caller did not
    ask for an upsert.
    """

    def __init__(
        self,
        message: str = "Access denied",
        *,
        object_name: str | None = None,
        path: str | Path | None = None,
    ) -> None:
        super().__init__(message, object_name=object_name, path=path)


class BlobNotFoundError(PolyStashError):
    """Raised when an object is missing or is not a regular file."""

    def __init__(
        self,
        message: str = "Blob not found",
        *,
        object_name: str | None = None,
        path: str | Path | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, object_name=object_name, path=path, cause=cause)


class StorageIOError(PolyStashError):
    """Raised when the underlying storage fails.

    Covers disk errors, permission problems, interrupted copies and remote
    backend failures, as opposed to logical errors like a missing object.
    """

    def __init__(
        self,
        message: str = "Storage I/O error",
        *,
        object_name: str | None = None,
        path: str | Path | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, object_name=object_name, path=path, cause=cause)


class OperationNotSupportedError(PolyStashError):
    """Raised when a provider does not implement a capability."""


class DataCorruptionError(PolyStashError):
    """Reserved for checksum verification failures."""


class StorageQuotaExceededError(PolyStashError):
    """Reserved for capacity failures."""


class ConfigurationError(PolyStashError):
    """Raised when blob store configuration is missing or inconsistent."""
