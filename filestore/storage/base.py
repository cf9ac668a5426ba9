"""Storage backend protocol and error taxonomy."""

from pathlib import PurePosixPath
from typing import Callable, Iterable, Iterator, Protocol, Union

# Either the whole body at once or a forward-only stream of chunks.
Content = Union[bytes, Iterable[bytes]]


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageIOError(StorageError):
    """Transport or filesystem failure, including reads of absent keys."""
    pass


class PreconditionError(StorageError):
    """A store was not in the state an operation requires."""
    pass


def check_key(key: str) -> str:
    """Reject keys that cannot name an entry."""
    if not isinstance(key, str) or not key:
        raise ValueError("Storage key must be a non-empty string")
    if PurePosixPath(key).is_absolute():
        raise ValueError(f"Storage key must be relative: {key!r}")
    return key


def as_bytes(content: Content) -> bytes:
    """Drain content into a single buffer."""
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    return b"".join(content)


class ChunkStream:
    """Single-pass iterator over content chunks backed by an open resource.

    The resource is released when the chunks run out, when iteration fails,
    or on an explicit ``close()``. Use it as a context manager when the stream
    might not be read to the end.
    """

    def __init__(self, chunks: Iterator[bytes], close: Callable[[], None]):
        self._chunks = chunks
        self._close = close
        self.closed = False

    def __iter__(self) -> "ChunkStream":
        return self

    def __next__(self) -> bytes:
        if self.closed:
            raise StopIteration
        try:
            return next(self._chunks)
        except BaseException:
            self.close()
            raise

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._close()

    def __enter__(self) -> "ChunkStream":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class StorageBackend(Protocol):
    """Protocol for storage backends (local filesystem or S3-compatible).

    ``initialize`` must succeed before any other call. Backends subclassing
    the protocol inherit ``is_empty`` and ``clear`` built on ``list_keys`` and
    ``delete``.
    """

    name: str

    def initialize(self) -> None:
        """Create the storage root if it does not exist."""
        ...

    def write(self, key: str, content: Content, content_type: str | None = None) -> None:
        """Store content under key, replacing any previous entry."""
        ...

    def read_buffer(self, key: str) -> bytes:
        """Return the whole content stored under key."""
        ...

    def read_stream(self, key: str) -> Iterator[bytes]:
        """Return the content stored under key as a single-pass chunk iterator.

        Built-in backends return a ``ChunkStream``; close it when the content
        is not read to the end.
        """
        ...

    def delete(self, key: str) -> None:
        """Remove the entry stored under key."""
        ...

    def list_keys(self, prefix: str = "") -> list[str]:
        """List all keys starting with prefix."""
        ...

    def exists(self, key: str) -> bool:
        """Check if a key exists without reading its content."""
        ...

    def type(self) -> str:
        """Short backend identifier."""
        ...

    def is_empty(self) -> bool:
        """Check if the store holds no entries."""
        return not self.list_keys()

    def clear(self) -> None:
        """Delete every entry in the store."""
        for key in self.list_keys():
            self.delete(key)
