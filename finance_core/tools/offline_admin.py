# =============================================================================
# finance_core/tools/offline_admin.py
# Operator Tool - Inspect the Offline Store and Force a Sync
# Run: finance-offline status | pending | failed [--clear] | sync
# =============================================================================

from __future__ import annotations
import argparse
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pandas as pd

from finance_core.config import OfflineSettings, load_settings
from finance_core.errors import ConfigurationError, ErrorContext
from finance_core.logging import setup_logging_from_settings
from finance_core.offline.local_store import LocalStore
from finance_core.offline.sync_coordinator import build_sync_coordinator

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_OFFLINE = 2


def print_header(title: str):
    """Print a formatted section header."""
    print("\n" + "=" * 70)
    print(f" {title}")
    print("=" * 70)


def _open_store(settings: OfflineSettings) -> LocalStore:
    store = LocalStore(settings.db_path)
    store.initialize()
    return store


def cmd_status(args: argparse.Namespace, settings: OfflineSettings) -> int:
    store = _open_store(settings)
    try:
        print_header("OFFLINE STORE STATUS")
        print(f"Database:          {settings.db_path}")
        print(f"Pending mutations: {store.count_pending_mutations()}")
        print(f"Failed mutations:  {len(store.list_failed_mutations())}")
        keys = store.cached_keys()
        print(f"Cached resources:  {', '.join(keys) if keys else '(none)'}")
    finally:
        store.close()
    return EXIT_OK


def cmd_pending(args: argparse.Namespace, settings: OfflineSettings) -> int:
    store = _open_store(settings)
    try:
        print_header("PENDING MUTATIONS (oldest first)")
        df = store.pending_frame()
        print("Queue is empty" if df.empty else df.to_string(index=False))
    finally:
        store.close()
    return EXIT_OK


def cmd_failed(args: argparse.Namespace, settings: OfflineSettings) -> int:
    store = _open_store(settings)
    try:
        print_header("REJECTED MUTATIONS")
        failed = store.list_failed_mutations()
        if not failed:
            print("No rejected mutations")
        else:
            df = pd.DataFrame(
                [
                    {
                        "id": m.id,
                        "method": m.method,
                        "endpoint": m.endpoint,
                        "status": m.status,
                        "error": m.error,
                        "failed_at": datetime.fromtimestamp(m.failed_at / 1000),
                    }
                    for m in failed
                ]
            )
            print(df.to_string(index=False))

        if args.clear:
            removed = store.clear_failed_mutations()
            print(f"\nCleared {removed} rejected mutation(s)")
    finally:
        store.close()
    return EXIT_OK


def cmd_sync(args: argparse.Namespace, settings: OfflineSettings) -> int:
    coordinator = build_sync_coordinator(settings, start_monitoring=False)
    try:
        print_header("SYNC")
        if not coordinator.is_online():
            print(f"[OFFLINE] API not reachable at {settings.api_base_url}")
            print(f"{coordinator.pending_count()} mutation(s) remain queued")
            return EXIT_OFFLINE

        summary = coordinator.trigger_sync()
        print(f"Synced:    {summary.synced}")
        print(f"Failed:    {summary.failed}")
        print(f"Remaining: {summary.remaining}")
    finally:
        coordinator.close()
        coordinator.transport.close()
        coordinator.store.close()
    return EXIT_OK


COMMANDS: Dict[str, Callable[[argparse.Namespace, OfflineSettings], int]] = {
    "status": cmd_status,
    "pending": cmd_pending,
    "failed": cmd_failed,
    "sync": cmd_sync,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="finance-offline",
        description="Inspect the offline store and replay queued mutations",
    )
    parser.add_argument("--config", help="Path to offline.toml")
    parser.add_argument("--db", help="Override the SQLite database path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Queue and cache overview")
    sub.add_parser("pending", help="List queued mutations")
    failed = sub.add_parser("failed", help="List mutations the server rejected")
    failed.add_argument("--clear", action="store_true", help="Delete the rejected list afterwards")
    sub.add_parser("sync", help="Replay queued mutations now")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(args.config)
    except ConfigurationError as e:
        print(f"[ERROR] {e}")
        return EXIT_ERROR

    if args.db:
        settings = replace(settings, db_path=Path(args.db))

    setup_logging_from_settings(settings, level="DEBUG" if args.verbose else "WARNING")

    code = EXIT_ERROR
    with ErrorContext(f"finance-offline {args.command}") as ctx:
        code = COMMANDS[args.command](args, settings)

    if ctx.error:
        print(f"[ERROR] {ctx.error['message']}")
        return EXIT_ERROR
    return code


if __name__ == "__main__":
    raise SystemExit(main())
