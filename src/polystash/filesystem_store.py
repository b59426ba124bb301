"""PolyStash filesystem blob store.

Stores each blob as a plain file beneath a root directory:

- Object names are resolved and normalized under the root; nothing outside
  it is ever read or written.
- File content is byte-identical to the payload. Metadata (checksum,
  etag, content type, readable filename) and user attributes are kept in
  extended attributes through the strategy selected at construction.
- Content is copied and hashed (XXH64) in a single pass.

There is no in-memory index: every query re-derives its answer from the
filesystem. No locking is performed; two writers racing on the same
explicit name are resolved by the OS, and the last file written wins.

Environment Variables:
    POLYSTASH_BASE_DIR: Root directory used when none is passed
        (default: tempfile.gettempdir() / polystash_blobs)
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from pathlib import Path

from polystash.attributes import (
    ATTR_CHECKSUM,
    ATTR_CHECKSUM_ALGORITHM,
    ATTR_CONTENT_TYPE,
    ATTR_ETAG,
    ATTR_READABLE_FILENAME,
    AttributeHandler,
    drop_blank_values,
    parse_checksum,
    parse_content_type,
    parse_etag,
    parse_readable_filename,
    select_attribute_handler,
)
from polystash.blobstore import BlobStore, BlobStoreContext
from polystash.digest import copy_with_digest
from polystash.errors import (
    BlobNotFoundError,
    OperationNotSupportedError,
    PolyStashError,
    StorageIOError,
)
from polystash.models import Blob, BlobResult, ListOptions
from polystash.payload import FilePayload, Payload
from polystash.resolver import ObjectNameResolver
from polystash.tracing import traced_blob_operation

logger = logging.getLogger(__name__)

POLYSTASH_BASE_DIR_ENV = "POLYSTASH_BASE_DIR"


def _default_base_dir() -> Path:
    env_dir = os.environ.get(POLYSTASH_BASE_DIR_ENV)
    if env_dir:
        return Path(env_dir)
    return Path(tempfile.gettempdir()) / "polystash_blobs"


class FilesystemBlobStore(BlobStore):
    """Blob store backed by a local directory."""

    def __init__(
        self,
        base_dir: str | Path | None = None,
        *,
        name: str = "default",
        attribute_handler: AttributeHandler | None = None,
    ) -> None:
        """Initialize the store, creating the root and probing attribute support.

        Args:
            base_dir: Root directory. If None, uses POLYSTASH_BASE_DIR or the
                OS temp directory.
            name: Store name used in logs and spans.
            attribute_handler: Attribute strategy to use instead of probing.

        Raises:
            OperationNotSupportedError: If base_dir exists but is a file.
            StorageIOError: If base_dir cannot be created.
        """
        root = Path(base_dir) if base_dir is not None else _default_base_dir()
        resolver = ObjectNameResolver(root)
        root = resolver.root

        if root.exists() and not root.is_dir():
            raise OperationNotSupportedError(
                f"Base directory for filesystem blob store '{name}' must be a directory",
                path=root,
            )
        try:
            root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(
                message=f"Failed to create base directory for blob store '{name}': {e}",
                path=root,
                cause=e,
            ) from e

        super().__init__(BlobStoreContext(name=name, details={"base_dir": str(root)}))
        self._resolver = resolver
        self._attributes = (
            attribute_handler if attribute_handler is not None else select_attribute_handler(root)
        )
        logger.info(
            "FilesystemBlobStore %s initialized with base_dir=%s attributes=%s",
            name,
            root,
            self._attributes.name,
        )

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        return self._resolver.root

    @property
    def attribute_handler(self) -> AttributeHandler:
        return self._attributes

    @traced_blob_operation("put")
    def put(
        self,
        prefix: str,
        readable_name: str | None,
        payload: Payload,
        user_attributes: Mapping[str, str] | None = None,
        content_type: str | None = None,
    ) -> Blob:
        """Store a new object under prefix with a random UUID filename."""
        target, object_name = self._resolver.generate_name(prefix)
        return self._save(
            target, object_name, readable_name, payload, user_attributes, content_type
        )

    @traced_blob_operation("put_or_replace")
    def put_or_replace(
        self,
        object_name: str,
        readable_name: str | None,
        payload: Payload,
        user_attributes: Mapping[str, str] | None = None,
        content_type: str | None = None,
    ) -> Blob:
        """Store an object under object_name, replacing any existing file."""
        target, canonical_name = self._resolver.resolve_for_replace(object_name)
        try:
            # A fresh inode drops attributes left by the replaced object.
            target.unlink(missing_ok=True)
        except OSError as e:
            raise StorageIOError(
                message=f"Failed to replace blob file: {e}",
                object_name=object_name,
                path=target,
                cause=e,
            ) from e
        return self._save(
            target, canonical_name, readable_name, payload, user_attributes, content_type
        )

    def _save(
        self,
        target: Path,
        object_name: str,
        readable_name: str | None,
        payload: Payload,
        user_attributes: Mapping[str, str] | None,
        content_type: str | None,
    ) -> Blob:
        try:
            with contextlib.closing(payload.stream()) as source, target.open("wb") as destination:
                digest = copy_with_digest(source, destination)
        except OSError as e:
            raise StorageIOError(
                message=f"Failed to write blob data: {e}",
                object_name=object_name,
                path=target,
                cause=e,
            ) from e

        user_attributes = drop_blank_values(user_attributes or {})
        if user_attributes:
            self._attributes.write_user_attributes(target, user_attributes)
        self._attributes.write_metadata(
            target,
            {
                ATTR_ETAG: digest.hexdigest,
                ATTR_CHECKSUM: digest.hexdigest,
                ATTR_CHECKSUM_ALGORITHM: digest.algorithm,
                ATTR_READABLE_FILENAME: readable_name,
                ATTR_CONTENT_TYPE: content_type,
            },
        )

        logger.debug(
            "Stored blob: store=%s object=%s length=%d checksum=%s",
            self.name,
            object_name,
            digest.length,
            digest.hexdigest,
        )
        return Blob(
            object_name=object_name,
            readable_name=readable_name,
            content_type=content_type,
            length=digest.length,
            last_modified=datetime.now(UTC),
            checksum=digest.hexdigest,
            checksum_algorithm=digest.algorithm,
            etag=digest.hexdigest,
            user_defined_attributes=user_attributes,
            repeatable=True,
        )

    def _describe(self, path: Path, acquire_payload: bool) -> Blob:
        """Rebuild a Blob from a file and its attributes."""
        object_name = self._resolver.object_name_for(path)
        try:
            st = path.stat()
        except FileNotFoundError as e:
            raise BlobNotFoundError(
                message="Blob disappeared while reading", object_name=object_name, cause=e
            ) from e
        except OSError as e:
            raise StorageIOError(
                message=f"Failed to stat blob file: {e}",
                object_name=object_name,
                path=path,
                cause=e,
            ) from e

        metadata = self._attributes.read_metadata(path)
        checksum, algorithm = parse_checksum(metadata)
        blob = Blob(
            object_name=object_name,
            readable_name=parse_readable_filename(metadata),
            content_type=parse_content_type(metadata),
            length=st.st_size,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=UTC),
            checksum=checksum,
            checksum_algorithm=algorithm,
            etag=parse_etag(metadata),
            user_defined_attributes=self._attributes.read_user_attributes(path),
            repeatable=True,
        )
        if acquire_payload:
            blob.payload = FilePayload(path)
        return blob

    @traced_blob_operation("get")
    def get(self, object_name: str) -> Blob:
        path = self._resolver.resolve_existing(object_name, expect_exist=True)
        return self._describe(path, acquire_payload=True)

    @traced_blob_operation("stat")
    def stat(self, object_name: str) -> Blob:
        path = self._resolver.resolve_existing(object_name, expect_exist=True)
        return self._describe(path, acquire_payload=False)

    @traced_blob_operation("list")
    def list(self, prefix: str = "", options: ListOptions | None = None) -> Iterator[BlobResult]:
        """Enumerate regular files under prefix.

        The file set is collected up front (bounded by directory size, not
        blob size) and sorted by object name; Blobs are built lazily while
        iterating. With recursive=False only direct children are returned,
        files inside nested directories are silently left out.

        A prefix that does not exist yields nothing; only an existing
        non-directory prefix is rejected.

        Raises:
            AccessDeniedError: If prefix escapes the root.
            OperationNotSupportedError: If prefix names a file.
            StorageIOError: If the directory cannot be read.
        """
        options = options or ListOptions.default()
        directory = self._resolver.resolve(prefix)
        is_directory = self._resolver.is_directory(directory, prefix)
        if is_directory is None:
            return iter(())
        if not is_directory:
            raise OperationNotSupportedError(
                "List operation failed: prefix is not a directory",
                object_name=prefix,
            )
        files = self._collect_files(directory, prefix, options.recursive)
        return self._iter_results(files)

    def _collect_files(self, directory: Path, prefix: str, recursive: bool) -> list[Path]:
        try:
            if not recursive:
                files = [p for p in directory.iterdir() if p.is_file()]
            else:
                files = []
                for dirpath, _dirnames, filenames in os.walk(directory, onerror=_raise_walk_error):
                    files.extend(p for p in (Path(dirpath) / f for f in filenames) if p.is_file())
        except OSError as e:
            raise StorageIOError(
                message=f"Failed to walk directory (recursive={recursive}): {e}",
                object_name=prefix,
                path=directory,
                cause=e,
            ) from e
        files.sort(key=lambda p: p.relative_to(directory).as_posix())
        return files

    def _iter_results(self, files: list[Path]) -> Iterator[BlobResult]:
        for path in files:
            try:
                yield BlobResult(self._describe(path, acquire_payload=False))
            except (PolyStashError, OSError, ValueError) as e:
                logger.debug("Failed to describe listed file %s: %s", path, e)
                yield BlobResult(error=e)

    @traced_blob_operation("exist")
    def exist(self, object_name: str) -> bool:
        try:
            self._resolver.resolve_existing(object_name, expect_exist=True)
        except BlobNotFoundError:
            return False
        return True

    @traced_blob_operation("remove")
    def remove(self, object_name: str, silent: bool = False) -> None:
        try:
            path = self._resolver.resolve_existing(object_name, expect_exist=True)
        except BlobNotFoundError:
            return
        except PolyStashError:
            if silent:
                logger.debug("Ignoring resolution failure while removing %s", object_name)
                return
            raise

        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            if silent:
                logger.debug("Ignoring failure while removing %s: %s", object_name, e)
                return
            raise StorageIOError(
                message=f"Failed to delete blob file: {e}",
                object_name=object_name,
                path=path,
                cause=e,
            ) from e
        logger.debug("Removed blob: store=%s object=%s", self.name, object_name)


def _raise_walk_error(error: OSError) -> None:
    raise error
