"""Local filesystem storage backend."""

import logging
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Iterator

from filestore.storage.base import (
    ChunkStream,
    Content,
    StorageBackend,
    StorageIOError,
    check_key,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
# Name prefix of in-progress writes; no key may use it in any segment.
TMP_PREFIX = ".filestore-tmp-"


def check_local_key(key: str) -> str:
    """Reject keys whose file path would list back under a different name."""
    check_key(key)
    if key.endswith("/") or PurePosixPath(key).as_posix() != key:
        raise ValueError(f"Storage key is not a canonical path: {key!r}")
    for segment in key.split("/"):
        if segment in ("", ".", ".."):
            raise ValueError(f"Storage key has an empty, '.' or '..' segment: {key!r}")
        if segment.startswith(TMP_PREFIX):
            raise ValueError(f"Storage key uses the reserved prefix {TMP_PREFIX!r}: {key!r}")
    return key


class LocalStorage(StorageBackend):
    """Storage backend using local filesystem.

    Keys map to paths below ``base_path``; keys containing ``/`` become
    nested directories and are listed back with ``/`` separators. Only keys
    that list back unchanged are accepted, so S3 folder markers such as
    ``photos/`` and keys like ``a//b`` raise ``ValueError``.
    """

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path)
        self.name = f"local filesystem ({self.base_path.absolute()})"

    def _resolve(self, key: str) -> Path:
        """Resolve a key to a full path inside the base directory."""
        check_local_key(key)
        path = self.base_path / key
        root = self.base_path.resolve()
        resolved = path.resolve()
        if resolved == root or root not in resolved.parents:
            raise ValueError(f"Storage key escapes {self.base_path}: {key!r}")
        return path

    def initialize(self) -> None:
        """Create the base directory and any missing ancestors."""
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Failed to create directory {self.base_path}: {e}") from e

    def write(self, key: str, content: Content, content_type: str | None = None) -> None:
        """Write content to a file, replacing it atomically."""
        path = self._resolve(key)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=TMP_PREFIX, suffix=".part", dir=path.parent)
            with os.fdopen(fd, "wb") as f:
                if isinstance(content, (bytes, bytearray, memoryview)):
                    f.write(content)
                else:
                    for chunk in content:
                        f.write(chunk)
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StorageIOError(f"Failed to write file: {key} in {self.base_path}: {e}") from e
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

    def read_buffer(self, key: str) -> bytes:
        """Load content from a file."""
        path = self._resolve(key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageIOError(f"Failed to read file: {key} from {self.base_path}: {e}") from e

    def read_stream(self, key: str) -> ChunkStream:
        """Open a file and return a stream over its chunks.

        The file is opened before returning so a missing key fails here and
        not on first iteration. It stays open until the stream is exhausted
        or closed.
        """
        path = self._resolve(key)
        try:
            f = path.open("rb")
        except OSError as e:
            raise StorageIOError(f"Failed to read file: {key} from {self.base_path}: {e}") from e
        return ChunkStream(self._read_chunks(f, key), f.close)

    def _read_chunks(self, f, key: str) -> Iterator[bytes]:
        while True:
            try:
                chunk = f.read(CHUNK_SIZE)
            except OSError as e:
                raise StorageIOError(f"Failed to read file: {key} from {self.base_path}: {e}") from e
            if not chunk:
                return
            yield chunk

    def delete(self, key: str) -> None:
        """Delete a file. Deleting a missing file succeeds."""
        path = self._resolve(key)
        try:
            if not path.exists():
                logger.debug("Delete of missing file %s ignored", key)
                return
            path.unlink()
        except OSError as e:
            raise StorageIOError(f"Failed to delete file: {key} from {self.base_path}: {e}") from e
        self._prune_empty_dirs(path.parent)

    def _prune_empty_dirs(self, directory: Path) -> None:
        """Remove directories emptied by a delete, up to the base directory."""
        root = self.base_path.resolve()
        directory = directory.resolve()
        while directory != root and root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                # Not empty, or removed concurrently
                return
            directory = directory.parent

    def list_keys(self, prefix: str = "") -> list[str]:
        """List all files whose relative name starts with prefix."""
        if not self.base_path.is_dir():
            raise StorageIOError(f"Storage directory does not exist: {self.base_path}")

        keys = []
        try:
            for path in self.base_path.rglob("*"):
                if path.is_file() and not path.name.startswith(TMP_PREFIX):
                    key = path.relative_to(self.base_path).as_posix()
                    if key.startswith(prefix):
                        keys.append(key)
        except OSError as e:
            raise StorageIOError(f"Failed to list files in {self.base_path}: {e}") from e
        return sorted(keys)

    def exists(self, key: str) -> bool:
        """Check if a file exists."""
        path = self._resolve(key)
        try:
            return path.is_file()
        except OSError as e:
            raise StorageIOError(f"Failed to check file: {key} in {self.base_path}: {e}") from e

    def type(self) -> str:
        return "local"
