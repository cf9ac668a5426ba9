"""Uniform file storage over local folders and S3-compatible buckets, with backup and sync."""

from filestore.backup import BackupResult, copy_store, copy_store_diff, diff_names, plan_diff
from filestore.storage import (
    LocalStorage,
    PreconditionError,
    S3Client,
    S3Storage,
    S3StorageError,
    StorageBackend,
    StorageError,
    StorageIOError,
)

__version__ = "0.1.0"

__all__ = [
    "BackupResult",
    "copy_store",
    "copy_store_diff",
    "diff_names",
    "plan_diff",
    "LocalStorage",
    "PreconditionError",
    "S3Client",
    "S3Storage",
    "S3StorageError",
    "StorageBackend",
    "StorageError",
    "StorageIOError",
]
