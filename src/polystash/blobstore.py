"""PolyStash blob store interface definition.

Provides the BlobStore base class that every storage provider implements.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from polystash.errors import OperationNotSupportedError
from polystash.models import Blob, BlobResult, ListOptions
from polystash.payload import Payload


@dataclass(frozen=True)
class BlobStoreContext:
    """Identity of a store instance.

    Attributes:
        name: Store name (the configuration qualifier).
        details: Provider-specific fields, e.g. base_dir or endpoint/bucket.
    """

    name: str
    details: Mapping[str, Any] = field(default_factory=dict)


PublicAccessIdentifierHandler = Callable[[BlobStoreContext, str], str]


def _no_public_access(context: BlobStoreContext, object_name: str) -> str:
    raise OperationNotSupportedError(
        f"No public access identifier handler for blob store '{context.name}'",
        object_name=object_name,
    )


class BlobStore(ABC):
    """Abstract base class for blob storage providers.

    Every provider offers the same contract: put, put_or_replace, get, stat,
    list, exist and remove over slash-separated object names. Failures are
    reported with the typed errors in polystash.errors.
    """

    def __init__(self, context: BlobStoreContext) -> None:
        self._context = context
        self._public_access_identifier_handler: PublicAccessIdentifierHandler = (
            _no_public_access
        )

    @property
    def name(self) -> str:
        return self._context.name

    @property
    def context(self) -> BlobStoreContext:
        return self._context

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier (e.g. "filesystem", "s3")."""
        ...

    def replace_public_access_identifier_handler(
        self, handler: PublicAccessIdentifierHandler
    ) -> BlobStore:
        """Install the function that maps object names to public identifiers."""
        self._public_access_identifier_handler = handler
        return self

    def public_access_identifier(self, object_name: str) -> str:
        """Return a public identifier (typically a URL) for an object.

        Raises:
            OperationNotSupportedError: If no handler has been installed.
        """
        return self._public_access_identifier_handler(self._context, object_name)

    def raw(self) -> Any:
        """Return the underlying backend handle.

        Raises:
            OperationNotSupportedError: If the provider exposes none.
        """
        raise OperationNotSupportedError(
            f"Raw backend access is not supported by the {self.backend_name} blob store"
        )

    @abstractmethod
    def put(
        self,
        prefix: str,
        readable_name: str | None,
        payload: Payload,
        user_attributes: Mapping[str, str] | None = None,
        content_type: str | None = None,
    ) -> Blob:
        """Store a new object under a freshly generated name.

        Args:
            prefix: Logical directory for the new object.
            readable_name: Human-readable filename to remember.
            payload: Source of the content.
            user_attributes: Caller-owned attributes.
            content_type: MIME type of the content.

        Returns:
            Blob describing the stored object (without payload).

        Raises:
            AccessDeniedError: If prefix escapes the store.
            StorageIOError: If the content cannot be written.
        """
        ...

    @abstractmethod
    def put_or_replace(
        self,
        object_name: str,
        readable_name: str | None,
        payload: Payload,
        user_attributes: Mapping[str, str] | None = None,
        content_type: str | None = None,
    ) -> Blob:
        """Store an object under a caller-chosen name, replacing any existing one."""
        ...

    @abstractmethod
    def get(self, object_name: str) -> Blob:
        """Return the object's descriptor with its payload attached.

        Raises:
            BlobNotFoundError: If the object does not exist.
            AccessDeniedError: If the name escapes the store.
        """
        ...

    @abstractmethod
    def stat(self, object_name: str) -> Blob:
        """Return the object's descriptor without payload.

        Raises:
            BlobNotFoundError: If the object does not exist.
            AccessDeniedError: If the name escapes the store.
        """
        ...

    @abstractmethod
    def list(self, prefix: str = "", options: ListOptions | None = None) -> Iterator[BlobResult]:
        """Lazily enumerate objects under prefix.

        A failure materialising one entry is yielded as an error BlobResult
        and does not stop the iteration.
        """
        ...

    @abstractmethod
    def exist(self, object_name: str) -> bool:
        """Return whether the object exists.

        Only absence maps to False; any other error propagates.
        """
        ...

    @abstractmethod
    def remove(self, object_name: str, silent: bool = False) -> None:
        """Delete an object.

        Removing an absent object returns normally. Other failures propagate
        unless silent is True.
        """
        ...
