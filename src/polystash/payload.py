"""Payload sources for blob content.

A payload produces a readable binary stream. Repeatable payloads (in-memory
buffers, files) can be streamed any number of times; stream and upload-form
payloads can be consumed once.
"""

from __future__ import annotations

import io
import mimetypes
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, BinaryIO


class Payload(ABC):
    """Abstract source of bytes for a blob."""

    @abstractmethod
    def stream(self) -> BinaryIO:
        """Open a readable binary stream over the payload content."""
        ...

    @property
    def repeatable(self) -> bool:
        """Whether stream() may be called more than once."""
        return False

    def read_bytes(self) -> bytes:
        """Read the whole payload into memory."""
        with self.stream() as fh:
            return fh.read()

    def close(self) -> None:
        """Release resources held by the payload."""

    def __enter__(self) -> Payload:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class BytesPayload(Payload):
    """In-memory buffer payload."""

    def __init__(self, content: bytes) -> None:
        self._content = bytes(content)

    @property
    def repeatable(self) -> bool:
        return True

    @property
    def length(self) -> int:
        return len(self._content)

    @property
    def content(self) -> bytes:
        return self._content

    def stream(self) -> BinaryIO:
        return io.BytesIO(self._content)


class FilePayload(Payload):
    """Payload backed by a file on disk."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def repeatable(self) -> bool:
        return True

    @property
    def path(self) -> Path:
        return self._path

    @property
    def filename(self) -> str:
        return self._path.name

    @property
    def length(self) -> int:
        return self._path.stat().st_size

    @property
    def last_modified(self) -> datetime:
        return datetime.fromtimestamp(self._path.stat().st_mtime, tz=UTC)

    @property
    def content_type(self) -> str | None:
        """Content type guessed from the file extension."""
        guessed, _ = mimetypes.guess_type(self._path.name)
        return guessed

    def stream(self) -> BinaryIO:
        return self._path.open("rb")


class StreamPayload(Payload):
    """Single-use payload wrapping an already open binary stream.

    The wrapped stream is handed out as-is, so it can only be consumed once.
    Closing the payload closes the stream.
    """

    def __init__(self, stream: BinaryIO) -> None:
        self._stream = stream

    def stream(self) -> BinaryIO:
        return self._stream

    def close(self) -> None:
        try:
            self._stream.close()
        except (OSError, ValueError):
            pass


class UploadFilePayload(Payload):
    """Payload wrapping an upload-form file part.

    Accepts objects shaped like ``starlette.datastructures.UploadFile``:
    a ``file`` attribute holding the spooled content, plus ``filename``,
    ``size`` and ``content_type`` as declared by the client.
    """

    def __init__(self, upload: Any) -> None:
        self._upload = upload

    @property
    def original_filename(self) -> str | None:
        return getattr(self._upload, "filename", None)

    @property
    def length(self) -> int | None:
        return getattr(self._upload, "size", None)

    @property
    def content_type(self) -> str | None:
        return getattr(self._upload, "content_type", None)

    def stream(self) -> BinaryIO:
        return self._upload.file
