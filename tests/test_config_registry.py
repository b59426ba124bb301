"""Tests for configuration loading and the blob store registry."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from polystash import registry as registry_module
from polystash.blobstore import BlobStore
from polystash.config import (
    BlobStoreProperties,
    PolyStashSettings,
    load_settings,
    parse_settings,
)
from polystash.errors import ConfigurationError, OperationNotSupportedError
from polystash.filesystem_store import FilesystemBlobStore
from polystash.registry import BlobStoreRegistry, get_builder, register_builder
from polystash.s3_store import S3BlobStore


def _write_yaml(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


class TestLoadSettings:
    """Tests for load_settings()."""

    def test_default_when_unconfigured(self, caplog: pytest.LogCaptureFixture) -> None:
        """Without a file, a single "default" filesystem store should be configured."""
        with caplog.at_level("WARNING", logger="polystash.config"):
            settings = load_settings()

        assert settings.primary == "default"
        assert list(settings.blobstore) == ["default"]
        assert settings.blobstore["default"].builder == "filesystem"
        assert settings.blobstore["default"].base_dir == "blobstore"
        assert "No blob store configuration found" in caplog.text

    def test_default_base_dir_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("POLYSTASH_BASE_DIR", "/srv/blobs")

        assert load_settings().blobstore["default"].base_dir == "/srv/blobs"

    def test_yaml_file_with_namespace(self, tmp_path: Path) -> None:
        """Stores should be read from YAML, sorted by qualifier, with dashed keys."""
        config = _write_yaml(
            tmp_path / "polystash.yaml",
            """
polystash:
  primary: docs
  blobstore:
    media:
      builder: MinIO
      endpoint: http://localhost:9000
      bucket: media
    docs:
      builder: fs
      base-dir: /var/lib/docs
""",
        )

        settings = load_settings(config)

        assert settings.primary == "docs"
        assert list(settings.blobstore) == ["docs", "media"]
        assert settings.blobstore["docs"].base_dir == "/var/lib/docs"
        assert settings.blobstore["media"].builder == "minio"
        assert settings.blobstore["media"].region == "us-east-1"

    def test_config_path_from_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        config = _write_yaml(
            tmp_path / "c.yaml", "blobstore:\n  only:\n    builder: filesystem\n    base_dir: x\n"
        )
        monkeypatch.setenv("POLYSTASH_CONFIG", str(config))

        settings = load_settings()

        assert list(settings.blobstore) == ["only"]
        assert settings.primary_qualifier == "only"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError):
            load_settings(tmp_path / "absent.yaml")

    def test_invalid_yaml_raises(self, tmp_path: Path) -> None:
        config = _write_yaml(tmp_path / "bad.yaml", "blobstore: [unclosed\n")

        with pytest.raises(ConfigurationError):
            load_settings(config)

    def test_unknown_property_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            parse_settings({"blobstore": {"a": {"builder": "fs", "colour": "blue"}}})

    def test_primary_must_be_configured(self) -> None:
        with pytest.raises(ConfigurationError):
            parse_settings({"primary": "b", "blobstore": {"a": {"builder": "fs"}}})


class TestCredentials:
    """Tests for S3 credential resolution."""

    def test_inline_keys_win(self) -> None:
        props = BlobStoreProperties(builder="s3", access_key="AK", secret_key="SK")

        assert props.resolve_credentials() == ("AK", "SK")

    def test_credentials_file(self, tmp_path: Path) -> None:
        creds = tmp_path / "creds.json"
        creds.write_text(json.dumps({"accessKey": "AK", "secretKey": "SK"}), encoding="utf-8")
        props = BlobStoreProperties(builder="s3", credentials=str(creds))

        assert props.resolve_credentials() == ("AK", "SK")

    def test_malformed_credentials_file(self, tmp_path: Path) -> None:
        creds = tmp_path / "creds.json"
        creds.write_text("not json", encoding="utf-8")
        props = BlobStoreProperties(builder="s3", credentials=str(creds))

        with pytest.raises(ConfigurationError):
            props.resolve_credentials()


class TestRegistry:
    """Tests for BlobStoreRegistry."""

    def test_build_filesystem_stores_and_fallback(self, temp_storage_dir: Path) -> None:
        """Unknown names should fall back to the primary store."""
        settings = PolyStashSettings(
            primary="b",
            blobstore={
                "a": BlobStoreProperties(
                    builder="filesystem", base_dir=str(temp_storage_dir / "a")
                ),
                "b": BlobStoreProperties(builder="fs", base_dir=str(temp_storage_dir / "b")),
            },
        )

        registry = BlobStoreRegistry.build_all(settings)

        assert registry.names() == ["a", "b"]
        assert registry.get("a").name == "a"
        assert registry.get("missing").name == "b"
        assert registry.get().name == "b"
        assert isinstance(registry.get("a"), FilesystemBlobStore)
        assert (temp_storage_dir / "a").is_dir()

    def test_primary_defaults_to_first_qualifier(self, temp_storage_dir: Path) -> None:
        settings = parse_settings(
            {
                "blobstore": {
                    "zeta": {"builder": "fs", "base_dir": str(temp_storage_dir / "z")},
                    "alpha": {"builder": "fs", "base_dir": str(temp_storage_dir / "a")},
                }
            }
        )

        assert BlobStoreRegistry.build_all(settings).primary == "alpha"

    def test_unknown_builder(self) -> None:
        settings = PolyStashSettings(blobstore={"x": BlobStoreProperties(builder="ftp")})

        with pytest.raises(ConfigurationError, match="Unknown blob store builder"):
            BlobStoreRegistry.build_all(settings)

    def test_filesystem_builder_requires_base_dir(self) -> None:
        settings = PolyStashSettings(blobstore={"x": BlobStoreProperties(builder="fs")})

        with pytest.raises(ConfigurationError):
            BlobStoreRegistry.build_all(settings)

    def test_filesystem_builder_rejects_file_base_dir(self, temp_storage_dir: Path) -> None:
        blocker = temp_storage_dir / "file"
        blocker.write_bytes(b"x")
        settings = PolyStashSettings(
            blobstore={"x": BlobStoreProperties(builder="fs", base_dir=str(blocker))}
        )

        with pytest.raises(OperationNotSupportedError):
            BlobStoreRegistry.build_all(settings)

    def test_s3_builder(self) -> None:
        settings = PolyStashSettings(
            blobstore={
                "media": BlobStoreProperties(
                    builder="minio",
                    endpoint="http://minio:9000",
                    bucket="media",
                    access_key="AK",
                    secret_key="SK",
                )
            }
        )

        with patch("polystash.registry.create_s3_client", return_value=MagicMock()) as factory:
            store = BlobStoreRegistry.build_all(settings).get("media")

        assert isinstance(store, S3BlobStore)
        assert store.bucket == "media"
        kwargs = factory.call_args.kwargs
        assert kwargs["endpoint_url"] == "http://minio:9000"
        assert kwargs["access_key_id"] == "AK"
        assert kwargs["use_path_style"] is True

    def test_s3_builder_requires_bucket(self) -> None:
        settings = PolyStashSettings(blobstore={"m": BlobStoreProperties(builder="s3")})

        with pytest.raises(ConfigurationError):
            BlobStoreRegistry.build_all(settings)

    def test_register_custom_builder(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(registry_module, "_BUILDERS", dict(registry_module._BUILDERS))
        custom = MagicMock(spec=BlobStore)
        builder = MagicMock(return_value=custom)

        register_builder("Custom", builder)

        assert get_builder("custom") is builder
        settings = PolyStashSettings(blobstore={"c": BlobStoreProperties(builder="custom")})
        assert BlobStoreRegistry.build_all(settings).get("c") is custom

    def test_empty_registry_raises(self) -> None:
        registry = BlobStoreRegistry({}, None)

        with pytest.raises(ConfigurationError):
            registry.get("anything")
