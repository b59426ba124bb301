"""HTTP header and URL helpers used by object-store providers."""

from __future__ import annotations

from urllib.parse import quote, unquote

INLINE = "inline"
ATTACHMENT = "attachment"

# Characters that force the RFC 5987 extended filename* form.
_UNSAFE_FILENAME_CHARS = frozenset('"%;<>\\^`{|}')


def _needs_encoding(filename: str) -> bool:
    return any(ord(c) < 32 or ord(c) > 126 or c in _UNSAFE_FILENAME_CHARS for c in filename)


def content_disposition_inline() -> str:
    return INLINE


def content_disposition_attachment(filename: str | None) -> str:
    """Build an attachment Content-Disposition value for filename."""
    if not filename or not filename.strip():
        return ATTACHMENT
    if _needs_encoding(filename):
        return f"attachment; filename*=UTF-8''{quote(filename, safe='')}"
    return f'attachment; filename="{filename}"'


def parse_content_disposition_filename(header: str | None) -> str | None:
    """Extract the filename from a Content-Disposition header value."""
    if not header or not header.strip():
        return None
    for part in header.split(";"):
        part = part.strip()
        if part.lower().startswith("filename*="):
            value = part[len("filename*=") :].strip()
            charset, _, encoded = value.partition("''")
            if not encoded:
                return unquote(value)
            return unquote(encoded, encoding=charset or "utf-8")
        if part.lower().startswith("filename="):
            value = part[len("filename=") :].strip()
            if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
                return value[1:-1]
            return value
    return None


def join_uri(base: str, *segments: str) -> str:
    """Join path segments onto a base URL with single slashes."""
    parts = [base.rstrip("/")]
    parts.extend(segment.strip("/") for segment in segments if segment and segment.strip("/"))
    return "/".join(parts)
