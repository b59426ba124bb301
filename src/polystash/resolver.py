"""Object name resolution for the filesystem blob store.

Maps logical object names and prefixes to absolute paths under the storage
root. Paths are normalized lexically before the root check, so ".."
segments cannot slip past validation and then be interpreted by the OS to
leave the root. Absolute names replace the root on join and are rejected
the same way.
"""

from __future__ import annotations

import logging
import os
import stat
import uuid
from pathlib import Path

from polystash.errors import AccessDeniedError, BlobNotFoundError, StorageIOError

logger = logging.getLogger(__name__)


def _ensure_directory(directory: Path, object_name: str) -> None:
    """Create a directory chain, treating a concurrent creator as success."""
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except FileExistsError as e:
        # exist_ok only covers directories; a file is in the way.
        raise StorageIOError(
            message="Path exists but is not a directory",
            object_name=object_name,
            path=directory,
            cause=e,
        ) from e
    except OSError as e:
        raise StorageIOError(
            message=f"Failed to create directory structure: {e}",
            object_name=object_name,
            path=directory,
            cause=e,
        ) from e


class ObjectNameResolver:
    """Translate between object names and paths beneath a fixed root."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(os.path.normpath(Path(root).absolute()))

    @property
    def root(self) -> Path:
        return self._root

    def _normalize(self, name: str) -> Path:
        return Path(os.path.normpath(self._root / name))

    def _check_within_root(self, target: Path, name: str) -> Path:
        if not target.is_relative_to(self._root):
            raise AccessDeniedError(
                message="Access denied: path is outside of base directory",
                object_name=name,
            )
        return target

    def resolve(self, name: str) -> Path:
        """Normalize root/name and reject anything outside the root.

        Raises:
            AccessDeniedError: If the name escapes the root or contains a
                NUL byte, which no filesystem path can hold.
        """
        if "\x00" in name:
            raise AccessDeniedError(
                message="Access denied: name contains a NUL byte",
                object_name=name,
            )
        return self._check_within_root(self._normalize(name), name)

    def stat_or_none(self, path: Path, name: str) -> os.stat_result | None:
        """Stat a resolved path, returning None when nothing is there.

        Raises:
            StorageIOError: If the path cannot be examined, e.g. a parent
                directory is not searchable.
        """
        try:
            return path.stat()
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            raise StorageIOError(
                message=f"Failed to examine path: {e}",
                object_name=name,
                path=path,
                cause=e,
            ) from e

    def is_directory(self, path: Path, name: str) -> bool | None:
        """Return None if absent, else whether the path is a directory."""
        st = self.stat_or_none(path, name)
        return None if st is None else stat.S_ISDIR(st.st_mode)

    def object_name_for(self, path: Path) -> str:
        """Return the canonical slash-separated object name for a path."""
        return Path(os.path.normpath(path)).relative_to(self._root).as_posix()

    def generate_name(self, prefix: str) -> tuple[Path, str]:
        """Allocate a fresh object path under prefix.

        Args:
            prefix: Logical directory for the new object; may be empty.

        Returns:
            Tuple of (absolute_path, object_name). The filename is a random
            UUID, so it never collides with an existing object.

        Raises:
            AccessDeniedError: If prefix resolves outside the root.
            StorageIOError: If the prefix directory cannot be created or a
                file is in its place.
        """
        directory = self.resolve(prefix)
        if self.is_directory(directory, prefix) is False:
            raise StorageIOError(
                message="Target path exists but is not a directory",
                object_name=prefix,
                path=directory,
            )
        _ensure_directory(directory, prefix)
        target = directory / str(uuid.uuid4())
        return target, self.object_name_for(target)

    def resolve_existing(self, object_name: str, expect_exist: bool) -> Path:
        """Resolve an object name for reading or for a fresh write.

        Args:
            object_name: Object name relative to the root.
            expect_exist: True to require an existing regular file; False to
                require that nothing exists yet (parents are created).

        Returns:
            Absolute path of the object.

        Raises:
            AccessDeniedError: If the name escapes the root, or if
                expect_exist is False and the target already exists.
            BlobNotFoundError: If expect_exist is True and the target is
                missing or is not a regular file.
            StorageIOError: If parent directories cannot be created.
        """
        target = self.resolve(object_name)
        if expect_exist:
            st = self.stat_or_none(target, object_name)
            if st is None or not stat.S_ISREG(st.st_mode):
                raise BlobNotFoundError(
                    message="Blob not found: object does not exist or is not a regular file",
                    object_name=object_name,
                )
            return target

        if self.stat_or_none(target, object_name) is not None:
            raise AccessDeniedError(
                message="Access denied: object already exists",
                object_name=object_name,
            )
        _ensure_directory(target.parent, object_name)
        return target

    def resolve_for_replace(self, object_name: str) -> tuple[Path, str]:
        """Resolve an object name as an upsert target.

        Unlike resolve_existing(expect_exist=False), an existing regular file
        is accepted and will be overwritten.

        Raises:
            AccessDeniedError: If the name escapes the root.
            StorageIOError: If the target is not a regular file or a parent
                directory cannot be created.
        """
        target = self.resolve(object_name)
        if target == self._root:
            raise StorageIOError(
                message="Object name resolves to the storage root",
                object_name=object_name,
            )
        st = self.stat_or_none(target, object_name)
        if st is not None and not stat.S_ISREG(st.st_mode):
            raise StorageIOError(
                message="Target path exists but is not a regular file",
                object_name=object_name,
                path=target,
            )
        _ensure_directory(target.parent, object_name)
        logger.debug("Resolved upsert target for %s", object_name)
        return target, self.object_name_for(target)
