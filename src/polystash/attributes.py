"""File attribute persistence for the filesystem blob store.

Metadata (etag, checksum, content type, readable filename) and caller
attributes are attached to each stored file out-of-band, without a side
database. Three strategies exist, chosen once per store by probing the
storage root:

- NativeXattrHandler: extended attributes through os.setxattr and friends.
- XattrCommandHandler: the external ``xattr`` command (macOS ships one).
- NoopAttributeHandler: no attribute support; writes are discarded and
  reads return nothing. Blob content stays fully retrievable, but metadata
  fields resolve to None.

Writes are best-effort per key: a key that fails is logged and skipped, and
the remaining keys are still written. Reads skip keys that cannot be
decoded. Blank values are never written.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import uuid
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path

logger = logging.getLogger(__name__)

USER_DEFINED_ATTRIBUTE_PREFIX = "polystash.user."
METADATA_ATTRIBUTE_PREFIX = "polystash.meta."

ATTR_ETAG = "etag"
ATTR_CONTENT_TYPE = "content-type"
ATTR_READABLE_FILENAME = "readable-filename"
ATTR_CHECKSUM = "checksum"
ATTR_CHECKSUM_ALGORITHM = "checksum-algorithm"

XATTR_EXECUTABLE = "/usr/bin/xattr"
_XATTR_KV_DELIMITER = ": "


def _platform_namespace() -> str:
    # Linux only permits unprivileged attributes in the "user." namespace.
    return "user." if sys.platform.startswith("linux") else ""


def _is_blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def drop_blank_values(attributes: Mapping[str, str | None]) -> dict[str, str]:
    """Return the entries a handler would actually persist."""
    return {key: str(value) for key, value in attributes.items() if not _is_blank(value)}


class AttributeHandler(ABC):
    """Strategy for persisting per-file key/value attributes.

    Metadata and user-defined attributes live in two separate maps. The
    namespace prefixes used to keep them apart on disk are private to each
    implementation.
    """

    name: str = "abstract"

    def write_metadata(self, path: Path, metadata: Mapping[str, str | None]) -> None:
        """Persist system-owned metadata for a file."""
        self._write(path, METADATA_ATTRIBUTE_PREFIX, metadata)

    def read_metadata(self, path: Path) -> dict[str, str]:
        """Read system-owned metadata for a file."""
        return self._read(path, METADATA_ATTRIBUTE_PREFIX)

    def write_user_attributes(self, path: Path, attributes: Mapping[str, str | None]) -> None:
        """Persist caller-owned attributes for a file."""
        self._write(path, USER_DEFINED_ATTRIBUTE_PREFIX, attributes)

    def read_user_attributes(self, path: Path) -> dict[str, str]:
        """Read caller-owned attributes for a file."""
        return self._read(path, USER_DEFINED_ATTRIBUTE_PREFIX)

    @abstractmethod
    def read_raw_attribute(self, path: Path, attribute_name: str) -> str | None:
        """Read one attribute by its full on-disk name, or None."""
        ...

    @abstractmethod
    def _write(self, path: Path, prefix: str, attributes: Mapping[str, str | None]) -> None: ...

    @abstractmethod
    def _read(self, path: Path, prefix: str) -> dict[str, str]: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class NativeXattrHandler(AttributeHandler):
    """Extended attributes through the operating system API."""

    name = "native"

    def __init__(self, namespace: str | None = None) -> None:
        self._namespace = _platform_namespace() if namespace is None else namespace

    @staticmethod
    def supported(root: Path) -> bool:
        """Probe whether the filesystem under root accepts extended attributes."""
        if not hasattr(os, "setxattr"):
            return False
        probe_name = f"{_platform_namespace()}polystash.probe.{uuid.uuid4().hex[:8]}"
        try:
            os.setxattr(root, probe_name, b"1")
            os.removexattr(root, probe_name)
        except OSError as e:
            logger.debug("Extended attributes not supported under %s: %s", root, e)
            return False
        return True

    def _write(self, path: Path, prefix: str, attributes: Mapping[str, str | None]) -> None:
        for key, value in attributes.items():
            if _is_blank(value):
                logger.debug("Value is blank, skip writing <%s> to %s", key, path)
                continue
            attribute_name = f"{self._namespace}{prefix}{key}"
            try:
                os.setxattr(path, attribute_name, str(value).encode("utf-8"))
            except OSError as e:
                logger.debug("Failed to write attribute %s to %s: %s", attribute_name, path, e)

    def _read(self, path: Path, prefix: str) -> dict[str, str]:
        full_prefix = f"{self._namespace}{prefix}"
        try:
            names = os.listxattr(path)
        except OSError as e:
            logger.debug("Failed to list attributes of %s: %s", path, e)
            return {}

        result: dict[str, str] = {}
        for attribute_name in names:
            if not attribute_name.startswith(full_prefix):
                continue
            try:
                value = os.getxattr(path, attribute_name).decode("utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.debug("Failed to read attribute %s from %s: %s", attribute_name, path, e)
                continue
            result[attribute_name[len(full_prefix) :]] = value
        return result

    def read_raw_attribute(self, path: Path, attribute_name: str) -> str | None:
        try:
            return os.getxattr(path, attribute_name).decode("utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.debug("Failed reading <%s> from %s: %s", attribute_name, path, e)
            return None


class XattrCommandHandler(AttributeHandler):
    """Extended attributes through the ``xattr`` command-line tool.

    One process is spawned per key written and per map read. Values are
    parsed from ``xattr -l`` output, one ``name: value`` pair per line.
    """

    name = "xattr-command"

    def __init__(self, executable: str = XATTR_EXECUTABLE, namespace: str | None = None) -> None:
        self._executable = executable
        self._namespace = _platform_namespace() if namespace is None else namespace

    @staticmethod
    def find_executable() -> str | None:
        """Locate the xattr tool, preferring the system location."""
        if Path(XATTR_EXECUTABLE).exists():
            return XATTR_EXECUTABLE
        return shutil.which("xattr")

    @classmethod
    def supported(cls, root: Path) -> bool:
        return cls.find_executable() is not None

    def _write(self, path: Path, prefix: str, attributes: Mapping[str, str | None]) -> None:
        for key, value in attributes.items():
            if _is_blank(value):
                logger.debug("Value is blank, skip writing <%s> to %s", key, path)
                continue
            attribute_name = f"{self._namespace}{prefix}{key}"
            try:
                subprocess.run(
                    [self._executable, "-w", attribute_name, str(value), str(path)],
                    capture_output=True,
                    check=True,
                )
            except (OSError, subprocess.CalledProcessError) as e:
                logger.debug("Failed to write attribute %s to %s: %s", attribute_name, path, e)

    def _run_and_capture(self, *args: str) -> str | None:
        try:
            completed = subprocess.run(
                [self._executable, *args],
                capture_output=True,
                check=True,
            )
        except (OSError, subprocess.CalledProcessError) as e:
            logger.debug("Unable to execute %s %s: %s", self._executable, " ".join(args), e)
            return None
        return completed.stdout.decode("utf-8", errors="replace")

    def _read(self, path: Path, prefix: str) -> dict[str, str]:
        output = self._run_and_capture("-l", str(path))
        if output is None:
            return {}
        return self.parse_listing(output, f"{self._namespace}{prefix}")

    @staticmethod
    def parse_listing(output: str, full_prefix: str) -> dict[str, str]:
        """Parse ``xattr -l`` output into a map, keeping keys under full_prefix."""
        result: dict[str, str] = {}
        for line in output.splitlines():
            if not line.startswith(full_prefix):
                continue
            attribute_name, sep, value = line.partition(_XATTR_KV_DELIMITER)
            if not sep:
                continue
            key = attribute_name[len(full_prefix) :]
            if key:
                result[key] = value.strip()
        return result

    def read_raw_attribute(self, path: Path, attribute_name: str) -> str | None:
        output = self._run_and_capture("-p", attribute_name, str(path))
        if output is None or not output.strip():
            return None
        return output.rstrip("\n")


class NoopAttributeHandler(AttributeHandler):
    """Fallback when the platform offers no attribute support."""

    name = "noop"

    @staticmethod
    def supported(root: Path) -> bool:
        return True

    def _write(self, path: Path, prefix: str, attributes: Mapping[str, str | None]) -> None:
        return None

    def _read(self, path: Path, prefix: str) -> dict[str, str]:
        return {}

    def read_raw_attribute(self, path: Path, attribute_name: str) -> str | None:
        return None


def select_attribute_handler(root: Path) -> AttributeHandler:
    """Probe root once and return the best available attribute strategy."""
    handler: AttributeHandler
    if NativeXattrHandler.supported(root):
        handler = NativeXattrHandler()
    elif XattrCommandHandler.supported(root):
        executable = XattrCommandHandler.find_executable() or XATTR_EXECUTABLE
        handler = XattrCommandHandler(executable=executable)
    else:
        handler = NoopAttributeHandler()
        logger.warning(
            "No extended attribute support under %s; blob metadata will not be persisted",
            root,
        )
    logger.info("Selected attribute handler %s for %s", handler.name, root)
    return handler


def parse_etag(metadata: Mapping[str, str]) -> str | None:
    return metadata.get(ATTR_ETAG) or None


def parse_content_type(metadata: Mapping[str, str]) -> str | None:
    return metadata.get(ATTR_CONTENT_TYPE) or None


def parse_readable_filename(metadata: Mapping[str, str]) -> str | None:
    return metadata.get(ATTR_READABLE_FILENAME) or None


def parse_checksum(metadata: Mapping[str, str]) -> tuple[str | None, str | None]:
    """Return (checksum, algorithm), or (None, None) unless both are present."""
    checksum = metadata.get(ATTR_CHECKSUM) or None
    algorithm = metadata.get(ATTR_CHECKSUM_ALGORITHM) or None
    if checksum is None or algorithm is None:
        return None, None
    return checksum, algorithm
