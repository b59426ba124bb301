"""Pytest configuration and fixtures for PolyStash tests.

This module provides common fixtures and configuration for all tests.
"""

from __future__ import annotations

import tempfile
from collections.abc import Iterator, Mapping
from pathlib import Path

import pytest

from polystash.attributes import AttributeHandler
from polystash.filesystem_store import FilesystemBlobStore


class InMemoryAttributeHandler(AttributeHandler):
    """Attribute strategy keeping attributes in a dict keyed by path.

    Behaves like the native handler (blank values skipped, separate
    namespaces) without depending on filesystem xattr support.
    """

    name = "in-memory"

    def __init__(self) -> None:
        self.attributes: dict[str, dict[str, str]] = {}

    def _write(self, path: Path, prefix: str, attributes: Mapping[str, str | None]) -> None:
        stored = self.attributes.setdefault(str(path), {})
        for key, value in attributes.items():
            if value is None or not str(value).strip():
                continue
            stored[f"{prefix}{key}"] = str(value)

    def _read(self, path: Path, prefix: str) -> dict[str, str]:
        stored = self.attributes.get(str(path), {})
        return {k[len(prefix) :]: v for k, v in stored.items() if k.startswith(prefix)}

    def read_raw_attribute(self, path: Path, attribute_name: str) -> str | None:
        return self.attributes.get(str(path), {}).get(attribute_name)

    def forget(self, path: Path) -> None:
        """Drop everything stored for path, as deleting the inode would."""
        self.attributes.pop(str(path), None)


@pytest.fixture(autouse=True)
def isolate_polystash_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear PolyStash environment variables for every test."""
    for key in (
        "POLYSTASH_CONFIG",
        "POLYSTASH_BASE_DIR",
        "POLYSTASH_OTEL_ENABLED",
        "POLYSTASH_OTEL_TEST_CAPTURE",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def temp_storage_dir() -> Iterator[Path]:
    """Create a temporary directory for storage tests."""
    with tempfile.TemporaryDirectory(prefix="polystash_test_storage_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def attribute_handler() -> InMemoryAttributeHandler:
    """Return a fresh in-memory attribute handler."""
    return InMemoryAttributeHandler()


@pytest.fixture
def store(
    temp_storage_dir: Path,
    attribute_handler: InMemoryAttributeHandler,
    monkeypatch: pytest.MonkeyPatch,
) -> FilesystemBlobStore:
    """Create a FilesystemBlobStore over a temp directory with in-memory attributes.

    Unlinking a file also drops its in-memory attributes, so replaced and
    removed objects behave as they do with extended attributes.
    """
    real_unlink = Path.unlink

    def unlink_with_attributes(path: Path, missing_ok: bool = False) -> None:
        real_unlink(path, missing_ok=missing_ok)
        attribute_handler.forget(path)

    monkeypatch.setattr(Path, "unlink", unlink_with_attributes)
    return FilesystemBlobStore(
        temp_storage_dir, name="test", attribute_handler=attribute_handler
    )
