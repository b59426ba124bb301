"""PolyStash S3-compatible blob store (AWS S3 / MinIO).

Implements the BlobStore contract over a boto3 S3 client. Object names are
bucket keys. Content type, readable filename (as Content-Disposition) and
user attributes travel as object headers and user metadata.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from polystash.blobstore import BlobStore, BlobStoreContext
from polystash.errors import BlobNotFoundError, StorageIOError
from polystash.http import (
    content_disposition_attachment,
    join_uri,
    parse_content_disposition_filename,
)
from polystash.models import Blob, BlobResult, ListOptions
from polystash.payload import Payload, StreamPayload
from polystash.tracing import traced_blob_operation

logger = logging.getLogger(__name__)

DEFAULT_PRESIGNED_URL_EXPIRATION = timedelta(days=7)
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


def create_s3_client(
    *,
    endpoint_url: str | None = None,
    region: str | None = None,
    access_key_id: str | None = None,
    secret_access_key: str | None = None,
    session_token: str | None = None,
    use_path_style: bool = False,
    verify_ssl: bool = True,
) -> Any:
    """Create a boto3 S3 client with SigV4 signing."""
    client_kwargs: dict[str, Any] = {
        "service_name": "s3",
        "verify": verify_ssl,
    }
    if region:
        client_kwargs["region_name"] = region
    if endpoint_url:
        client_kwargs["endpoint_url"] = endpoint_url
    if access_key_id:
        client_kwargs["aws_access_key_id"] = access_key_id
    if secret_access_key:
        client_kwargs["aws_secret_access_key"] = secret_access_key
    if session_token:
        client_kwargs["aws_session_token"] = session_token

    addressing_style = "path" if use_path_style else "auto"
    client_kwargs["config"] = Config(
        signature_version="s3v4", s3={"addressing_style": addressing_style}
    )
    return boto3.client(**client_kwargs)


def _error_code(exc: ClientError) -> str:
    response = getattr(exc, "response", {}) or {}
    return str((response.get("Error") or {}).get("Code") or "")


def _is_not_found(exc: ClientError) -> bool:
    response = getattr(exc, "response", {}) or {}
    status_code = (response.get("ResponseMetadata") or {}).get("HTTPStatusCode")
    return status_code == 404 or _error_code(exc) in _NOT_FOUND_CODES


def _strip_etag(etag: str | None) -> str | None:
    if not etag:
        return None
    return etag.replace('"', "") or None


def _expiry_seconds(expires: timedelta | None) -> int:
    return int((expires or DEFAULT_PRESIGNED_URL_EXPIRATION).total_seconds())


class S3BlobStore(BlobStore):
    """Blob store backed by one bucket of an S3-compatible service."""

    def __init__(
        self,
        bucket: str,
        client: Any,
        *,
        name: str = "default",
        endpoint: str | None = None,
        delimiter: str = "/",
    ) -> None:
        super().__init__(
            BlobStoreContext(name=name, details={"endpoint": endpoint, "bucket": bucket})
        )
        self._bucket = bucket
        self._client = client
        self._delimiter = delimiter
        if endpoint:
            self.replace_public_access_identifier_handler(
                lambda ctx, object_name: join_uri(
                    str(ctx.details["endpoint"]), str(ctx.details["bucket"]), object_name
                )
            )

    @property
    def backend_name(self) -> str:
        return "s3"

    @property
    def bucket(self) -> str:
        return self._bucket

    def raw(self) -> Any:
        return self._client

    def _translate(self, exc: Exception, object_name: str, action: str) -> Exception:
        if isinstance(exc, ClientError) and _is_not_found(exc):
            return BlobNotFoundError(
                message=f"Blob not found in bucket '{self._bucket}'",
                object_name=object_name,
                cause=exc,
            )
        return StorageIOError(
            message=f"S3 operation failed while {action} in bucket '{self._bucket}': {exc}",
            object_name=object_name,
            cause=exc,
        )

    def generate_object_name(self, prefix: str) -> str:
        """Return prefix/<uuid4> with surrounding delimiters stripped."""
        prefix = (prefix or "").strip(self._delimiter)
        if not prefix.strip():
            return str(uuid.uuid4())
        return f"{prefix}{self._delimiter}{uuid.uuid4()}"

    @traced_blob_operation("put")
    def put(
        self,
        prefix: str,
        readable_name: str | None,
        payload: Payload,
        user_attributes: Mapping[str, str] | None = None,
        content_type: str | None = None,
    ) -> Blob:
        object_name = self.generate_object_name(prefix)
        return self.put_or_replace(
            object_name, readable_name, payload, user_attributes, content_type
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
        extra: dict[str, Any] = {
            "ContentDisposition": content_disposition_attachment(readable_name),
        }
        if content_type:
            extra["ContentType"] = content_type
        if user_attributes:
            extra["Metadata"] = dict(user_attributes)

        try:
            with payload.stream() as source:
                self._client.upload_fileobj(source, self._bucket, object_name, ExtraArgs=extra)
        except (ClientError, BotoCoreError, OSError) as e:
            raise StorageIOError(
                message=f"Failed to put object to bucket '{self._bucket}': {e}",
                object_name=object_name,
                cause=e,
            ) from e
        logger.debug("Uploaded object: bucket=%s key=%s", self._bucket, object_name)
        return self.stat(object_name)

    @traced_blob_operation("stat")
    def stat(self, object_name: str) -> Blob:
        try:
            response = self._client.head_object(Bucket=self._bucket, Key=object_name)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, object_name, "reading object metadata") from e
        return self._from_head(object_name, response)

    @traced_blob_operation("get")
    def get(self, object_name: str) -> Blob:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=object_name)
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, object_name, "getting object") from e
        blob = self._from_head(object_name, response)
        blob.content_type = blob.content_type or DEFAULT_CONTENT_TYPE
        blob.payload = StreamPayload(response["Body"])
        return blob

    def _from_head(self, object_name: str, response: Mapping[str, Any]) -> Blob:
        metadata = dict(response.get("Metadata") or {})
        readable_name = parse_content_disposition_filename(response.get("ContentDisposition"))
        if not readable_name:
            readable_name = metadata.get("filename") or None
        last_modified = response.get("LastModified") or datetime.now(UTC)
        return Blob(
            object_name=object_name,
            readable_name=readable_name,
            content_type=response.get("ContentType"),
            length=int(response.get("ContentLength", -1)),
            last_modified=last_modified,
            etag=_strip_etag(response.get("ETag")),
            user_defined_attributes=metadata,
            repeatable=False,
        )

    @traced_blob_operation("list")
    def list(self, prefix: str = "", options: ListOptions | None = None) -> Iterator[BlobResult]:
        options = options or ListOptions.default()
        params: dict[str, Any] = {"Bucket": self._bucket, "Prefix": prefix or ""}
        if not options.recursive:
            params["Delimiter"] = options.delimiter
        return self._iter_results(params)

    def _iter_results(self, params: dict[str, Any]) -> Iterator[BlobResult]:
        paginator = self._client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(**params):
                for item in page.get("Contents") or []:
                    yield BlobResult(
                        Blob(
                            object_name=item["Key"],
                            etag=_strip_etag(item.get("ETag")),
                            last_modified=item.get("LastModified") or datetime.now(UTC),
                            length=int(item.get("Size", -1)),
                        )
                    )
        except (ClientError, BotoCoreError) as e:
            logger.debug("Listing bucket %s failed: %s", self._bucket, e)
            yield BlobResult(error=self._translate(e, params["Prefix"], "listing objects"))

    @traced_blob_operation("exist")
    def exist(self, object_name: str) -> bool:
        try:
            self.stat(object_name)
        except BlobNotFoundError:
            return False
        return True

    @traced_blob_operation("remove")
    def remove(self, object_name: str, silent: bool = False) -> None:
        try:
            self._client.delete_object(Bucket=self._bucket, Key=object_name)
        except ClientError as e:
            if _is_not_found(e) or silent:
                return
            raise self._translate(e, object_name, "removing object") from e
        except BotoCoreError as e:
            if silent:
                return
            raise self._translate(e, object_name, "removing object") from e

    def presign_get_url(
        self,
        object_name: str,
        expires: timedelta | None = None,
        *,
        response_content_type: str | None = None,
        response_content_disposition: str | None = None,
    ) -> str:
        """Return a presigned GET URL (default expiry: 7 days)."""
        params: dict[str, Any] = {"Bucket": self._bucket, "Key": object_name}
        if response_content_type:
            params["ResponseContentType"] = response_content_type
        if response_content_disposition:
            params["ResponseContentDisposition"] = response_content_disposition
        try:
            return self._client.generate_presigned_url(
                "get_object", Params=params, ExpiresIn=_expiry_seconds(expires)
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, object_name, "presigning GET url") from e

    def presign_put_url(
        self,
        object_name: str,
        expires: timedelta | None = None,
        *,
        content_type: str | None = None,
    ) -> str:
        """Return a presigned PUT URL (default expiry: 7 days)."""
        params: dict[str, Any] = {"Bucket": self._bucket, "Key": object_name}
        if content_type:
            params["ContentType"] = content_type
        try:
            return self._client.generate_presigned_url(
                "put_object", Params=params, ExpiresIn=_expiry_seconds(expires)
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageIOError(
                message=f"Failed to presign PUT url: {e}", object_name=object_name, cause=e
            ) from e

    def presigned_post_form(
        self,
        object_name: str,
        expires: timedelta | None = None,
        *,
        content_type_prefix: str | None = None,
        content_length_range: tuple[int, int] | None = None,
    ) -> dict[str, str]:
        """Return form fields (plus "url") for a browser POST upload.

        The policy pins the key; optionally it also requires a Content-Type
        prefix and a content length range (applied only when lower < upper).
        """
        fields: dict[str, str] = {}
        conditions: list[Any] = []
        if content_type_prefix:
            conditions.append(["starts-with", "$Content-Type", content_type_prefix])
        if content_length_range is not None:
            lower, upper = content_length_range
            if lower < upper:
                conditions.append(["content-length-range", lower, upper])
        try:
            post = self._client.generate_presigned_post(
                Bucket=self._bucket,
                Key=object_name,
                Fields=fields,
                Conditions=conditions,
                ExpiresIn=_expiry_seconds(expires),
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageIOError(
                message=f"Failed to presign POST policy: {e}", object_name=object_name, cause=e
            ) from e
        form = dict(post.get("fields") or {})
        form["key"] = object_name
        form["url"] = post["url"]
        return form
