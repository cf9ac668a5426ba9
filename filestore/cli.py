"""Command-line interface for copying and syncing stores."""

import argparse
import logging
import sys

from filestore.backup import copy_store, copy_store_diff, plan_diff
from filestore.config import DEFAULT_CONFIG_PATH, Config, StoreConfig
from filestore.storage import LocalStorage, S3Client, S3Storage, StorageBackend, StorageError


def get_storage(store: StoreConfig, config: Config) -> StorageBackend:
    """Build and initialize the storage backend for a store configuration."""
    store.validate()
    if store.type == "s3":
        client = S3Client(
            endpoint=store.endpoint,
            access_key=store.access_key,
            secret_key=store.secret_key,
            region=store.region,
            max_retries=config.transfer.max_retries,
            timeout=config.transfer.timeout_seconds,
        )
        storage = S3Storage(client, store.bucket)
    else:
        storage = LocalStorage(store.base_path)
    storage.initialize()
    return storage


def resolve_store(name: str, config: Config) -> StorageBackend:
    store = config.get_store(name)
    if not store:
        raise LookupError(f"Store '{name}' not found in config")
    if not store.enabled:
        raise LookupError(f"Store '{name}' is disabled in config")
    return get_storage(store, config)


def print_progress(action: str, key: str) -> None:
    print(f"  {action:<6} {key}")


def cmd_stores(args, config: Config):
    """List configured stores."""
    if not config.stores:
        print("No stores configured")
        return

    print(f"{'Name':<20} | {'Type':<6} | {'Enabled':<7} | Location")
    print("=" * 80)
    for store in config.stores:
        enabled = "yes" if store.enabled else "no"
        print(f"{store.name:<20} | {store.type:<6} | {enabled:<7} | {store.location}")


def cmd_ls(args, config: Config):
    """List keys in a store."""
    storage = resolve_store(args.store, config)
    keys = storage.list_keys(args.prefix)
    for key in keys:
        print(key)
    print(f"\n{len(keys)} file(s) in {storage.name}", file=sys.stderr)


def cmd_copy(args, config: Config):
    """Copy every file from one store into an empty store."""
    source = resolve_store(args.source, config)
    target = resolve_store(args.target, config)
    workers = args.workers if args.workers else config.transfer.workers

    print(f"Copying {source.name} -> {target.name}")
    result = copy_store(source, target, args.prefix, workers=workers, on_progress=print_progress)
    print(result)


def cmd_sync(args, config: Config):
    """Reconcile a target store with a source store."""
    source = resolve_store(args.source, config)
    target = resolve_store(args.target, config)
    workers = args.workers if args.workers else config.transfer.workers

    if args.dry_run:
        added, removed = plan_diff(source, target, args.prefix)
        for key in added:
            print_progress("copy", key)
        for key in removed:
            print_progress("delete", key)
        print(f"dry run: {len(added)} to copy, {len(removed)} to delete")
        return

    print(f"Syncing {source.name} -> {target.name}")
    result = copy_store_diff(source, target, args.prefix, workers=workers, on_progress=print_progress)
    print(result)


def cmd_clear(args, config: Config):
    """Delete every file in a store."""
    storage = resolve_store(args.store, config)

    # Confirm before deleting unless --yes flag is used
    if not args.yes:
        response = input(
            f"\nDelete ALL files from {storage.name}?\n"
            f"This cannot be undone. Continue? [y/N]: "
        )
        if response.lower() not in ("y", "yes"):
            print("Cancelled")
            return

    storage.clear()
    print(f"Cleared {storage.name}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Copy and sync files between local folders and S3-compatible buckets"
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH, help=f"Configuration file (default: {DEFAULT_CONFIG_PATH})"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log progress details")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("stores", help="List configured stores")

    ls_parser = subparsers.add_parser("ls", help="List files in a store")
    ls_parser.add_argument("store", help="Store name")
    ls_parser.add_argument("--prefix", default="", help="Only list names starting with this prefix")

    for command, help_text in (
        ("copy", "Copy all files into an empty store"),
        ("sync", "Copy missing files and delete extra files in the target"),
    ):
        sub = subparsers.add_parser(command, help=help_text)
        sub.add_argument("source", help="Source store name")
        sub.add_argument("target", help="Target store name")
        sub.add_argument("--prefix", default="", help="Only transfer names starting with this prefix")
        sub.add_argument("--workers", "-w", type=int, help="Number of parallel transfers")
        if command == "sync":
            sub.add_argument(
                "--dry-run", action="store_true", help="Show what would change without changing anything"
            )

    clear_parser = subparsers.add_parser("clear", help="Delete all files in a store")
    clear_parser.add_argument("store", help="Store name")
    clear_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation")

    return parser


COMMANDS = {
    "stores": cmd_stores,
    "ls": cmd_ls,
    "copy": cmd_copy,
    "sync": cmd_sync,
    "clear": cmd_clear,
}


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Load configuration
    try:
        config = Config.from_file(args.config)
        config.validate()
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    # Execute command
    try:
        COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)
    except (StorageError, LookupError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
