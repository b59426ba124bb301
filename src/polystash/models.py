"""PolyStash data models.

Provides the Blob descriptor returned by every read-side operation, the
BlobResult wrapper used by listings, and ListOptions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import cast

from polystash.payload import Payload


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class Blob:
    """Descriptor of one stored object plus, optionally, its content.

    A Blob is never persisted itself. Providers rebuild it from the backing
    object and its metadata on every put, get, stat or list iteration.

    Attributes:
        object_name: Canonical slash-separated identifier, e.g.
            "images/2f1c...". Generated by the store on put().
        readable_name: Human-readable filename, usually differs from
            object_name (e.g. "photo.jpg").
        content_type: MIME type of the content.
        length: Size in bytes; -1 when unknown.
        last_modified: Last modification time (timezone-aware, UTC).
        checksum: Hex-encoded content checksum.
        checksum_algorithm: Identifier of the algorithm behind checksum.
        etag: Entity tag; equals checksum for the filesystem provider.
        user_defined_attributes: Caller-supplied key/value attributes.
        payload: Content handle, attached by get() only.
        repeatable: Whether the payload can be read more than once.
    """

    object_name: str | None = None
    readable_name: str | None = None
    content_type: str | None = None
    length: int = -1
    last_modified: datetime = field(default_factory=_utcnow)
    checksum: str | None = None
    checksum_algorithm: str | None = None
    etag: str | None = None
    user_defined_attributes: dict[str, str] = field(default_factory=dict)
    payload: Payload | None = None
    repeatable: bool = False

    @property
    def contains_payload(self) -> bool:
        """Return True when a payload is attached."""
        return self.payload is not None

    def to_dict(self) -> dict[str, str | int | bool | dict[str, str] | None]:
        """Convert the descriptor (without payload) to a JSON-safe dict."""
        return {
            "object_name": self.object_name,
            "readable_name": self.readable_name,
            "content_type": self.content_type,
            "length": self.length,
            "last_modified": self.last_modified.isoformat(),
            "checksum": self.checksum,
            "checksum_algorithm": self.checksum_algorithm,
            "etag": self.etag,
            "user_defined_attributes": dict(self.user_defined_attributes),
            "repeatable": self.repeatable,
        }


class BlobResult:
    """One element of a listing: either a Blob or the error that replaced it.

    Listing never aborts because one entry fails to materialise; the failure
    is carried here and re-raised by get().
    """

    __slots__ = ("_blob", "_error")

    def __init__(self, blob: Blob | None = None, error: BaseException | None = None) -> None:
        if (blob is None) == (error is None):
            raise ValueError("BlobResult requires exactly one of blob or error")
        self._blob = blob
        self._error = error

    @property
    def ok(self) -> bool:
        return self._error is None

    @property
    def error(self) -> BaseException | None:
        return self._error

    def get(self) -> Blob:
        """Return the Blob, or raise the error captured for this entry."""
        if self._blob is None:
            raise cast(BaseException, self._error)
        return self._blob

    def __repr__(self) -> str:
        if self._error is not None:
            return f"BlobResult(error={self._error!r})"
        return f"BlobResult(blob={self._blob!r})"


@dataclass(frozen=True)
class ListOptions:
    """Options for list().

    Attributes:
        delimiter: Hierarchy delimiter, used by object-store providers.
        recursive: When False, only direct children of the prefix are listed.
    """

    delimiter: str = "/"
    recursive: bool = True

    @classmethod
    def default(cls) -> ListOptions:
        return _DEFAULT_LIST_OPTIONS


_DEFAULT_LIST_OPTIONS = ListOptions()
