"""Registry of blob store builders and configured store instances.

Builders are plain functions keyed by alias. The built-in aliases are
"filesystem"/"fs" and "s3"/"minio"; applications may register more.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from polystash.blobstore import BlobStore
from polystash.config import BlobStoreProperties, PolyStashSettings
from polystash.errors import ConfigurationError
from polystash.filesystem_store import FilesystemBlobStore
from polystash.s3_store import S3BlobStore, create_s3_client

logger = logging.getLogger(__name__)

BlobStoreBuilder = Callable[[str, BlobStoreProperties], BlobStore]


def build_filesystem_store(qualifier: str, properties: BlobStoreProperties) -> BlobStore:
    """Build a FilesystemBlobStore from properties.

    Raises:
        ConfigurationError: If base_dir is missing.
        OperationNotSupportedError: If base_dir is a file.
    """
    if not properties.base_dir or not properties.base_dir.strip():
        raise ConfigurationError(f"Blob store '{qualifier}' requires base_dir")
    return FilesystemBlobStore(properties.base_dir, name=qualifier)


def build_s3_store(qualifier: str, properties: BlobStoreProperties) -> BlobStore:
    """Build an S3BlobStore from properties.

    Raises:
        ConfigurationError: If bucket is missing or credentials are unreadable.
    """
    if not properties.bucket or not properties.bucket.strip():
        raise ConfigurationError(f"Blob store '{qualifier}' requires bucket")
    access_key, secret_key = properties.resolve_credentials()
    client = create_s3_client(
        endpoint_url=properties.endpoint,
        region=properties.region,
        access_key_id=access_key,
        secret_access_key=secret_key,
        use_path_style=bool(properties.extra.get("path_style", properties.endpoint is not None)),
        verify_ssl=bool(properties.extra.get("verify_ssl", True)),
    )
    return S3BlobStore(
        properties.bucket, client, name=qualifier, endpoint=properties.endpoint
    )


_BUILDERS: dict[str, BlobStoreBuilder] = {
    "filesystem": build_filesystem_store,
    "fs": build_filesystem_store,
    "s3": build_s3_store,
    "minio": build_s3_store,
}


def register_builder(alias: str, builder: BlobStoreBuilder) -> None:
    """Register (or replace) the builder for an alias."""
    if not alias or not alias.strip():
        raise ConfigurationError("Builder alias cannot be empty")
    _BUILDERS[alias.strip().lower()] = builder


def get_builder(alias: str) -> BlobStoreBuilder:
    """Return the builder registered for alias.

    Raises:
        ConfigurationError: If no builder is registered under alias.
    """
    builder = _BUILDERS.get(alias.strip().lower())
    if builder is None:
        raise ConfigurationError(
            f"Unknown blob store builder '{alias}'. Valid options: {sorted(_BUILDERS)}"
        )
    return builder


class BlobStoreRegistry:
    """Named blob store instances built from settings."""

    def __init__(self, stores: dict[str, BlobStore], primary: str | None) -> None:
        self._stores = dict(stores)
        self._primary = primary

    @classmethod
    def build_all(cls, settings: PolyStashSettings) -> BlobStoreRegistry:
        """Build every configured store.

        Raises:
            ConfigurationError: If a builder is unknown or rejects its properties.
        """
        stores: dict[str, BlobStore] = {}
        for qualifier, properties in settings.blobstore.items():
            builder = get_builder(properties.builder)
            stores[qualifier] = builder(qualifier, properties)
            logger.info("Built blob store %s with builder %s", qualifier, properties.builder)
        return cls(stores, settings.primary_qualifier)

    @property
    def primary(self) -> str | None:
        return self._primary

    def names(self) -> list[str]:
        return sorted(self._stores)

    def get(self, name: str | None = None) -> BlobStore:
        """Return the named store, or the primary store when name is unknown.

        Raises:
            ConfigurationError: If neither the name nor a primary store resolves.
        """
        if name and name in self._stores:
            return self._stores[name]
        if name:
            logger.debug("Blob store %s not configured, falling back to primary", name)
        if self._primary and self._primary in self._stores:
            return self._stores[self._primary]
        raise ConfigurationError(f"No blob store named '{name}' and no primary store")
