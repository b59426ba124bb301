"""Tests for payload sources and the Blob data model."""

from __future__ import annotations

import io
from datetime import UTC
from pathlib import Path

import pytest
from starlette.datastructures import Headers, UploadFile

from polystash.filesystem_store import FilesystemBlobStore
from polystash.models import Blob, BlobResult, ListOptions
from polystash.payload import BytesPayload, FilePayload, StreamPayload, UploadFilePayload


class TestBytesPayload:
    def test_is_repeatable(self) -> None:
        """An in-memory payload can be streamed any number of times."""
        payload = BytesPayload(b"abc")

        assert payload.repeatable
        assert payload.read_bytes() == b"abc"
        assert payload.read_bytes() == b"abc"
        assert payload.length == 3


class TestFilePayload:
    def test_exposes_file_properties(self, tmp_path: Path) -> None:
        """A file payload should expose name, length, mtime and guessed type."""
        source = tmp_path / "photo.png"
        source.write_bytes(b"\x89PNG....")

        payload = FilePayload(source)

        assert payload.repeatable
        assert payload.filename == "photo.png"
        assert payload.length == 8
        assert payload.content_type == "image/png"
        assert payload.last_modified.tzinfo == UTC
        assert payload.read_bytes() == b"\x89PNG...."

    def test_unknown_extension_has_no_content_type(self, tmp_path: Path) -> None:
        source = tmp_path / "blob.unknownext"
        source.write_bytes(b"")

        assert FilePayload(source).content_type is None


class TestStreamPayload:
    def test_single_use_and_closed_with_payload(self) -> None:
        """Closing a stream payload should close the wrapped stream."""
        stream = io.BytesIO(b"once")

        with StreamPayload(stream) as payload:
            assert not payload.repeatable
            assert payload.stream().read() == b"once"

        assert stream.closed

    def test_close_is_idempotent(self) -> None:
        payload = StreamPayload(io.BytesIO(b"x"))

        payload.close()
        payload.close()


class TestUploadFilePayload:
    def test_wraps_starlette_upload_file(self) -> None:
        """Upload-form parts should expose declared filename, size and content type."""
        upload = UploadFile(
            file=io.BytesIO(b"form data"),
            size=9,
            filename="form.txt",
            headers=Headers({"content-type": "text/plain"}),
        )

        payload = UploadFilePayload(upload)

        assert not payload.repeatable
        assert payload.original_filename == "form.txt"
        assert payload.length == 9
        assert payload.content_type == "text/plain"
        assert payload.stream().read() == b"form data"

    def test_stores_through_filesystem_store(self, store: FilesystemBlobStore) -> None:
        """An upload payload should be storable like any other payload."""
        upload = UploadFile(file=io.BytesIO(b"uploaded"), filename="u.bin")
        payload = UploadFilePayload(upload)

        blob = store.put("uploads", payload.original_filename, payload)

        assert blob.length == 8
        assert blob.readable_name == "u.bin"


class TestBlobResult:
    def test_success(self) -> None:
        blob = Blob(object_name="a/b")
        result = BlobResult(blob)

        assert result.ok
        assert result.error is None
        assert result.get() is blob

    def test_failure_reraises(self) -> None:
        error = OSError("boom")
        result = BlobResult(error=error)

        assert not result.ok
        assert result.error is error
        with pytest.raises(OSError, match="boom"):
            result.get()

    @pytest.mark.parametrize("args", [{}, {"blob": Blob(), "error": OSError("x")}])
    def test_requires_exactly_one(self, args: dict[str, object]) -> None:
        with pytest.raises(ValueError):
            BlobResult(**args)  # type: ignore[arg-type]


class TestBlobModel:
    def test_defaults(self) -> None:
        """A fresh Blob has unknown length, no payload and an aware timestamp."""
        blob = Blob()

        assert blob.length == -1
        assert not blob.contains_payload
        assert blob.last_modified.tzinfo is not None
        assert blob.user_defined_attributes == {}

    def test_to_dict_omits_payload(self) -> None:
        blob = Blob(object_name="x", payload=BytesPayload(b"x"), length=1)

        data = blob.to_dict()

        assert "payload" not in data
        assert data["object_name"] == "x"
        assert data["length"] == 1

    def test_default_list_options_are_shared(self) -> None:
        assert ListOptions.default() is ListOptions.default()
        assert ListOptions.default() == ListOptions(delimiter="/", recursive=True)
