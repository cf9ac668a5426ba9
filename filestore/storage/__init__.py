"""Storage backend implementations."""

from filestore.storage.base import (
    ChunkStream,
    PreconditionError,
    StorageBackend,
    StorageError,
    StorageIOError,
)
from filestore.storage.client import S3Client
from filestore.storage.local import LocalStorage
from filestore.storage.s3 import S3Storage, S3StorageError

__all__ = [
    "ChunkStream",
    "StorageBackend",
    "StorageError",
    "StorageIOError",
    "PreconditionError",
    "LocalStorage",
    "S3Client",
    "S3Storage",
    "S3StorageError",
]
