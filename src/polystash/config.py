"""PolyStash configuration models and loader.

Configuration is a YAML document of the form:

    polystash:
      primary: docs
      blobstore:
        docs:
          builder: filesystem
          base-dir: /var/lib/polystash/docs
        media:
          builder: s3
          endpoint: http://localhost:9000
          bucket: media
          credentials: /etc/polystash/minio.json

The top-level "polystash" key is optional. Keys may use dashes or
underscores.

Environment Variables:
    POLYSTASH_CONFIG: Path of the YAML file read when none is passed.
    POLYSTASH_BASE_DIR: Base directory of the fallback "default" store
        (default: blobstore)
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from polystash.errors import ConfigurationError

logger = logging.getLogger(__name__)

POLYSTASH_CONFIG_ENV = "POLYSTASH_CONFIG"
POLYSTASH_BASE_DIR_ENV = "POLYSTASH_BASE_DIR"

DEFAULT_QUALIFIER = "default"
DEFAULT_BASE_DIR = "blobstore"
DEFAULT_REGION = "us-east-1"


class BlobStoreProperties(BaseModel):
    """Properties of one configured blob store."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    builder: str = Field(..., min_length=1, description="Builder alias, e.g. filesystem or s3")
    base_dir: str | None = Field(default=None, alias="base-dir")
    endpoint: str | None = None
    region: str = DEFAULT_REGION
    access_key: str | None = Field(default=None, alias="access-key")
    secret_key: str | None = Field(default=None, alias="secret-key")
    credentials: str | None = Field(
        default=None, description="JSON file holding accessKey and secretKey"
    )
    bucket: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @field_validator("builder")
    @classmethod
    def normalize_builder(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("builder cannot be empty or whitespace-only")
        return v.strip().lower()

    def resolve_credentials(self) -> tuple[str | None, str | None]:
        """Return (access_key, secret_key).

        Inline keys win; otherwise the credentials file is read.

        Raises:
            ConfigurationError: If the credentials file is unreadable or malformed.
        """
        if self.access_key or self.secret_key or not self.credentials:
            return self.access_key, self.secret_key
        return load_credentials_file(self.credentials)


class PolyStashSettings(BaseModel):
    """Top-level settings: the primary store and every named store."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    primary: str | None = None
    blobstore: dict[str, BlobStoreProperties] = Field(default_factory=dict)

    @field_validator("blobstore")
    @classmethod
    def sort_qualifiers(cls, v: dict[str, BlobStoreProperties]) -> dict[str, BlobStoreProperties]:
        return dict(sorted(v.items()))

    @property
    def primary_qualifier(self) -> str | None:
        """Configured primary, or the first qualifier when none is set."""
        if self.primary:
            return self.primary
        return next(iter(self.blobstore), None)


def load_credentials_file(path: str | Path) -> tuple[str | None, str | None]:
    """Read accessKey/secretKey from a JSON credentials file.

    Raises:
        ConfigurationError: If the file cannot be read or parsed.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Failed to read credentials file: {e}", path=path, cause=e
        ) from e
    if not isinstance(data, dict):
        raise ConfigurationError("Credentials file must contain a JSON object", path=path)
    return data.get("accessKey"), data.get("secretKey")


def default_settings() -> PolyStashSettings:
    base_dir = os.environ.get(POLYSTASH_BASE_DIR_ENV) or DEFAULT_BASE_DIR
    return PolyStashSettings(
        primary=DEFAULT_QUALIFIER,
        blobstore={
            DEFAULT_QUALIFIER: BlobStoreProperties(builder="filesystem", base_dir=base_dir),
        },
    )


def parse_settings(data: Any) -> PolyStashSettings:
    """Validate a settings mapping (as decoded from YAML).

    Raises:
        ConfigurationError: If the mapping does not describe valid settings.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Configuration root must be a mapping")
    if "polystash" in data:
        data = data["polystash"] or {}
    try:
        settings = PolyStashSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid blob store configuration: {e}", cause=e) from e

    if settings.primary and settings.primary not in settings.blobstore:
        raise ConfigurationError(
            f"Primary blob store '{settings.primary}' is not configured"
        )
    return settings


def load_settings(path: str | Path | None = None) -> PolyStashSettings:
    """Load settings from YAML.

    Args:
        path: YAML file. If None, POLYSTASH_CONFIG is consulted.

    Returns:
        Parsed settings. When no file is given, or the file configures no
        stores, a single "default" filesystem store is returned.

    Raises:
        ConfigurationError: If the file cannot be read or is invalid.
    """
    if path is None:
        path = os.environ.get(POLYSTASH_CONFIG_ENV) or None

    if path is None:
        logger.warning(
            "No blob store configuration found, using default filesystem store"
        )
        return default_settings()

    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}", path=path, cause=e
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse configuration file: {e}", path=path, cause=e
        ) from e

    settings = parse_settings(data)
    if not settings.blobstore:
        logger.warning(
            "Configuration %s defines no blob stores, using default filesystem store", path
        )
        return default_settings()
    logger.info(
        "Loaded blob store configuration from %s: stores=%s primary=%s",
        path,
        list(settings.blobstore),
        settings.primary_qualifier,
    )
    return settings
