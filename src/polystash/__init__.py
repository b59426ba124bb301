"""PolyStash - unified blob storage.

Provides one contract over several storage backends:
- FilesystemBlobStore: Local directory; metadata kept in extended attributes
- S3BlobStore: AWS S3 / MinIO compatible object storage

Every object stored by the filesystem provider is tagged with an XXH64
checksum computed while the content is written.

Environment Variables:
    POLYSTASH_CONFIG: YAML configuration file for the registry and CLI
    POLYSTASH_BASE_DIR: Base directory for the default filesystem store
    POLYSTASH_OTEL_ENABLED: Enable OpenTelemetry spans for store operations
"""

from polystash.blobstore import BlobStore, BlobStoreContext
from polystash.errors import (
    AccessDeniedError,
    BlobNotFoundError,
    ConfigurationError,
    DataCorruptionError,
    OperationNotSupportedError,
    PolyStashError,
    StorageIOError,
    StorageQuotaExceededError,
)
from polystash.filesystem_store import FilesystemBlobStore
from polystash.models import Blob, BlobResult, ListOptions
from polystash.payload import (
    BytesPayload,
    FilePayload,
    Payload,
    StreamPayload,
    UploadFilePayload,
)
from polystash.s3_store import S3BlobStore

__version__ = "0.1.0"

__all__ = [
    "BlobStore",
    "BlobStoreContext",
    "FilesystemBlobStore",
    "S3BlobStore",
    "Blob",
    "BlobResult",
    "ListOptions",
    "Payload",
    "BytesPayload",
    "FilePayload",
    "StreamPayload",
    "UploadFilePayload",
    "PolyStashError",
    "AccessDeniedError",
    "BlobNotFoundError",
    "StorageIOError",
    "OperationNotSupportedError",
    "DataCorruptionError",
    "StorageQuotaExceededError",
    "ConfigurationError",
]
