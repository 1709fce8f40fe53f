#!/usr/bin/env python3
"""
Ledger maintenance CLI.

Usage:
    uv run -m youpod.ledger                       # Show ledger summary
    uv run -m youpod.ledger --prune-missing       # Drop entries whose file is gone
    uv run -m youpod.ledger --relabel             # Fix entries stored under display labels
    uv run -m youpod.ledger --orphans --delete    # Delete media files not in the ledger
    uv run -m youpod.ledger --prune-missing --dry-run
"""

import argparse
import sys

from youpod.config import load_config
from youpod.errors import YouPodError
from youpod.logger import setup_logging
from .maintenance import (
    delete_orphan_files,
    find_orphan_files,
    prune_missing,
    relabel_entries,
)
from .store import LedgerStore


def main():
    parser = argparse.ArgumentParser(
        description="Inspect and repair the download ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  uv run -m youpod.ledger                       # Show ledger summary
  uv run -m youpod.ledger --prune-missing       # Drop entries whose file is gone
  uv run -m youpod.ledger --relabel --dry-run   # Show label fixes without saving
  uv run -m youpod.ledger --orphans --delete    # Delete media files not in the ledger
        """,
    )
    parser.add_argument("--config", default="config.yml", help="Path to config.yml")
    parser.add_argument(
        "--prune-missing",
        action="store_true",
        help="Remove entries whose artifact no longer exists",
    )
    parser.add_argument(
        "--relabel",
        action="store_true",
        help="Move entries stored under a display label to the configured slug",
    )
    parser.add_argument(
        "--orphans",
        action="store_true",
        help="List media files that no ledger entry references",
    )
    parser.add_argument(
        "--delete", action="store_true", help="With --orphans, delete the files"
    )
    parser.add_argument(
        "--dry-run", action="store_true", help="Show changes without saving"
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Detailed console output"
    )

    args = parser.parse_args()

    logger = setup_logging(
        logger_name="youpod",
        log_file="logs/ledger.log",
        verbose=args.verbose,
    )

    try:
        config = load_config(args.config)
        store = LedgerStore.open(config.root_dir, config.ledger_file)

        with store:
            print(f"Ledger: {store.ledger_path}")
            print(f"  Entries: {len(store)}")
            if store.malformed_count:
                print(f"  Malformed lines skipped: {store.malformed_count}")
            for source_id in store.source_ids():
                print(f"  {source_id}: {len(store.entries_for(source_id))} entries")

            prefix = "Would remove" if args.dry_run else "Removed"

            if args.prune_missing:
                missing = prune_missing(store, dry_run=args.dry_run)
                for entry in missing:
                    print(f"  - {entry.item_id}: {entry.local_path}")
                print(f"{prefix} {len(missing)} entries with missing files")

            if args.relabel:
                corrected = relabel_entries(store, config.sources, dry_run=args.dry_run)
                for entry in corrected:
                    print(f"  ~ {entry.item_id} -> {entry.source_id}")
                action = "Would relabel" if args.dry_run else "Relabeled"
                print(f"{action} {len(corrected)} entries")

            if args.orphans:
                orphans = find_orphan_files(store, config.root_dir / config.downloads_dir)
                for path in orphans:
                    print(f"  ? {path}")
                if args.delete and not args.dry_run:
                    deleted = delete_orphan_files(orphans)
                    print(f"Deleted {deleted} orphan files")
                else:
                    print(f"Found {len(orphans)} orphan files")

        logger.info("Ledger maintenance completed")

    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(130)
    except (YouPodError, OSError) as e:
        print(f"✗ Ledger maintenance failed: {e}")
        logger.error(f"Ledger maintenance failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
