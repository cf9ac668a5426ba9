"""Copy and reconcile the contents of two stores.

Everything here goes through the ``StorageBackend`` protocol, so any pair of
stores works: local to S3, S3 to local, or two buckets.

``copy_store`` replicates into an empty target. ``copy_store_diff`` brings an
existing target in line with the source by copying names the target lacks and
deleting names the source lacks. The diff compares names only: an entry present
on both sides is never rewritten, even when its content differs.

Neither function is atomic. A failure stops the run and propagates; entries
already transferred stay in place. Re-list the target to see how far a failed
run got.
"""

import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from filestore.storage.base import PreconditionError, StorageBackend

logger = logging.getLogger(__name__)

# Called as on_progress(action, key) after each finished step; action is "copy" or "delete".
ProgressCallback = Callable[[str, str], None]


@dataclass
class BackupResult:
    """Names touched by a backup run."""

    operation: str
    copied: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    @property
    def unchanged(self) -> bool:
        return not self.copied and not self.deleted

    def __str__(self) -> str:
        return f"{self.operation}: {len(self.copied)} copied, {len(self.deleted)} deleted"


def diff_names(source_names: Iterable[str], target_names: Iterable[str]) -> tuple[list[str], list[str]]:
    """Return (added, removed) between two name sets.

    ``added`` holds source names missing from the target, ``removed`` holds
    target names missing from the source. Both keep the input order.
    """
    source_names = list(source_names)
    target_names = list(target_names)
    source_set = set(source_names)
    target_set = set(target_names)

    added = [name for name in dict.fromkeys(source_names) if name not in target_set]
    removed = [name for name in dict.fromkeys(target_names) if name not in source_set]
    return added, removed


def plan_diff(source: StorageBackend, target: StorageBackend, prefix: str = "") -> tuple[list[str], list[str]]:
    """List both stores and return what ``copy_store_diff`` would add and remove."""
    target_names = target.list_keys(prefix)
    source_names = source.list_keys(prefix)
    return diff_names(source_names, target_names)


def copy_store(
    source: StorageBackend,
    target: StorageBackend,
    prefix: str = "",
    workers: int = 1,
    on_progress: ProgressCallback | None = None,
) -> BackupResult:
    """Copy all files from the source store to the target store.

    The target must be empty, otherwise ``PreconditionError`` is raised before
    anything is written.

    Args:
        source: Store to read from
        target: Empty store to write to
        prefix: Only copy names starting with this prefix
        workers: Number of parallel transfers (1 copies sequentially)
        on_progress: Optional callback invoked after each copied name

    Returns:
        BackupResult listing the copied names
    """
    if not _is_empty(target):
        raise PreconditionError(f"Target store is not empty: {_describe(target)}")

    names = source.list_keys(prefix)
    logger.info("Copying %d files from %s to %s", len(names), _describe(source), _describe(target))

    result = BackupResult(operation="copy")
    _run(names, lambda name: _transfer(source, target, name), "copy", workers, result.copied, on_progress)
    return result


def copy_store_diff(
    source: StorageBackend,
    target: StorageBackend,
    prefix: str = "",
    workers: int = 1,
    on_progress: ProgressCallback | None = None,
) -> BackupResult:
    """Make the target hold exactly the source's names under prefix.

    Names missing from the target are copied, names missing from the source are
    deleted from the target. Names on both sides are left alone whatever their
    content, so modified files are not picked up.

    Args:
        source: Store to read from
        target: Store to reconcile
        prefix: Only consider names starting with this prefix
        workers: Number of parallel transfers (1 runs sequentially)
        on_progress: Optional callback invoked after each copy or delete

    Returns:
        BackupResult listing the copied and deleted names
    """
    added, removed = plan_diff(source, target, prefix)
    logger.info(
        "Syncing %s to %s: %d to copy, %d to delete",
        _describe(source), _describe(target), len(added), len(removed),
    )

    result = BackupResult(operation="sync")
    _run(added, lambda name: _transfer(source, target, name), "copy", workers, result.copied, on_progress)
    _run(removed, target.delete, "delete", workers, result.deleted, on_progress)
    return result


def _transfer(source: StorageBackend, target: StorageBackend, name: str) -> None:
    stream = source.read_stream(name)
    try:
        target.write(name, stream)
    finally:
        # Release the source handle when the write stops before the end
        close = getattr(stream, "close", None)
        if close:
            close()


def _run(
    names: Sequence[str],
    action: Callable[[str], None],
    label: str,
    workers: int,
    done: list[str],
    on_progress: ProgressCallback | None,
) -> None:
    """Apply action to every name, stopping at the first failure.

    Successful names are appended to ``done`` as they finish, so the caller's
    result reflects partial progress when an exception propagates.
    """
    def finish(name: str) -> None:
        logger.debug("%s %s", label, name)
        done.append(name)
        if on_progress:
            on_progress(label, name)

    if workers <= 1 or len(names) <= 1:
        for name in names:
            action(name)
            finish(name)
        return

    with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(action, name): name for name in names}
        error = None
        for future in concurrent.futures.as_completed(futures):
            exc = future.exception()
            if exc is not None:
                error = exc
                break
            finish(futures[future])

        if error is not None:
            for future in futures:
                future.cancel()
            # Let transfers already in flight settle before reporting
            concurrent.futures.wait(futures)
            for future, name in futures.items():
                if future.done() and not future.cancelled() and future.exception() is None and name not in done:
                    finish(name)
            raise error


def _is_empty(store: StorageBackend) -> bool:
    # Stores that only implement the core calls fall back to a listing
    if hasattr(store, "is_empty"):
        return store.is_empty()
    return not store.list_keys()


def _describe(store: StorageBackend) -> str:
    return getattr(store, "name", None) or store.type()
