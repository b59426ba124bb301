"""OpenTelemetry tracing for blob store operations.

Spans carry only safe attributes: the store name, the backend, a SHA256 of
the object name or prefix, and result fields such as checksum and length.
Absolute filesystem paths and raw object names are never exported.
"""

from __future__ import annotations

import functools
import hashlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from opentelemetry import trace

from polystash.models import Blob
from polystash.observability import is_tracing_enabled

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def traced_blob_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace a blob store method with OpenTelemetry.

    The decorated method's first positional argument is the object name (or
    the prefix for put and list).

    Args:
        operation: Operation name (e.g., "put", "get", "stat", "remove").

    Returns:
        Decorated function that emits spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            if not is_tracing_enabled():
                return func(self, *args, **kwargs)

            name = _target_name(args, kwargs)

            tracer = trace.get_tracer("polystash.blob_store")
            with tracer.start_as_current_span(f"polystash.blob_store.{operation}") as span:
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                store_name = getattr(self, "name", None)
                if store_name:
                    span.set_attribute("polystash.store", store_name)
                name_sha256 = hashlib.sha256((name or "").encode("utf-8")).hexdigest()
                span.set_attribute("polystash.object_name_sha256", name_sha256)

                try:
                    result = func(self, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise

                if result is not None:
                    _add_result_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _target_name(args: tuple[Any, ...], kwargs: dict[str, Any]) -> str:
    if args:
        return str(args[0])
    for key in ("object_name", "prefix"):
        if key in kwargs:
            return str(kwargs[key])
    return ""


def _add_result_attributes(span: Any, result: Any) -> None:
    """Add checksum, length and content type of a returned Blob."""
    if isinstance(result, Blob):
        if result.checksum:
            span.set_attribute("polystash.blob_checksum", result.checksum)
        if result.checksum_algorithm:
            span.set_attribute("polystash.blob_checksum_algorithm", result.checksum_algorithm)
        span.set_attribute("polystash.blob_length", result.length)
        if result.content_type:
            span.set_attribute("polystash.blob_content_type", result.content_type)
        span.set_attribute("polystash.blob_has_payload", result.contains_payload)
    elif isinstance(result, bool):
        span.set_attribute("polystash.blob_exists", result)
