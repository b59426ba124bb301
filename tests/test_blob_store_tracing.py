"""Tests for OpenTelemetry span emission by blob store operations.

Spans must carry only safe attributes: a SHA256 of the object name, the
store name and backend, and result fields. Raw object names and absolute
paths must never appear.
"""

from __future__ import annotations

import hashlib
import os
from collections.abc import Iterator
from typing import Any

import pytest

from polystash.errors import BlobNotFoundError
from polystash.filesystem_store import FilesystemBlobStore
from polystash.observability import (
    clear_test_spans,
    configure_tracing,
    get_test_spans,
    reset_tracing,
)
from polystash.payload import BytesPayload


def _attrs(span: Any) -> dict[str, Any]:
    return dict(span.attributes) if span.attributes else {}


def _spans_named(operation: str) -> list[Any]:
    return [s for s in get_test_spans() if s.name == f"polystash.blob_store.{operation}"]


class TestOtelSpans:
    """Tests for span emission with the in-memory exporter."""

    @pytest.fixture(autouse=True)
    def tracing_enabled(self, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
        """Enable in-memory tracing for each test and reset afterwards."""
        reset_tracing()
        monkeypatch.setenv("POLYSTASH_OTEL_ENABLED", "1")
        monkeypatch.setenv("POLYSTASH_OTEL_TEST_CAPTURE", "1")
        configure_tracing()
        clear_test_spans()

        yield

        reset_tracing()

    def test_put_emits_span_with_safe_attributes(
        self, store: FilesystemBlobStore, temp_storage_dir: Any
    ) -> None:
        """Put should emit a span with hashed name and result fields, never raw paths."""
        blob = store.put("secret-prefix", "secret.txt", BytesPayload(b"data"), {}, "text/plain")

        (span,) = _spans_named("put")
        attrs = _attrs(span)

        assert attrs["storage.backend"] == "filesystem"
        assert attrs["polystash.store"] == "test"
        assert (
            attrs["polystash.object_name_sha256"]
            == hashlib.sha256(b"secret-prefix").hexdigest()
        )
        assert attrs["polystash.blob_checksum"] == blob.checksum
        assert attrs["polystash.blob_checksum_algorithm"] == "xxHash64"
        assert attrs["polystash.blob_length"] == 4
        assert attrs["polystash.blob_content_type"] == "text/plain"

        for key, value in attrs.items():
            text = str(value)
            assert str(temp_storage_dir) not in text, f"{key} leaks the storage path"
            assert blob.object_name not in text, f"{key} leaks the object name"
            assert "secret-prefix" not in text, f"{key} leaks the prefix"

    def test_get_span_reports_payload(self, store: FilesystemBlobStore) -> None:
        blob = store.put_or_replace("docs/a.txt", None, BytesPayload(b"a"))
        clear_test_spans()

        store.get(blob.object_name)

        (span,) = _spans_named("get")
        attrs = _attrs(span)
        assert attrs["polystash.blob_has_payload"] is True
        assert (
            attrs["polystash.object_name_sha256"]
            == hashlib.sha256(b"docs/a.txt").hexdigest()
        )

    def test_exist_span_reports_result(self, store: FilesystemBlobStore) -> None:
        store.exist("nothing/here")

        (span,) = _spans_named("exist")
        assert _attrs(span)["polystash.blob_exists"] is False

    def test_failed_operation_marks_error(self, store: FilesystemBlobStore) -> None:
        with pytest.raises(BlobNotFoundError):
            store.stat("missing")

        (span,) = _spans_named("stat")
        attrs = _attrs(span)
        assert attrs["error"] is True
        assert attrs["error.type"] == "BlobNotFoundError"

    def test_keyword_arguments_are_hashed(self, store: FilesystemBlobStore) -> None:
        store.remove(object_name="kw/name", silent=True)

        (span,) = _spans_named("remove")
        assert (
            _attrs(span)["polystash.object_name_sha256"]
            == hashlib.sha256(b"kw/name").hexdigest()
        )


class TestTracingDisabled:
    def test_no_spans_when_disabled(self, store: FilesystemBlobStore) -> None:
        """Without POLYSTASH_OTEL_ENABLED, operations should not emit spans."""
        assert "POLYSTASH_OTEL_ENABLED" not in os.environ
        clear_test_spans()

        store.put("p", None, BytesPayload(b"x"))

        assert get_test_spans() == []
