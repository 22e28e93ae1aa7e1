#!/usr/bin/env python3
"""Utility script to inspect (and purge) a platform snapshot."""
import asyncio
import sys
from collections import Counter
from pathlib import Path

from pydantic import ValidationError

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from listing_merge.config import MergeSettings
from listing_merge.merge.retention import purge_removed
from listing_merge.models import Listing
from listing_merge.store.snapshot import read_snapshot, write_snapshot
from listing_merge.timeutil import now_iso


async def show_stats(settings: MergeSettings, platform: str) -> None:
    """Show per-status counts for a platform store."""
    path = settings.old_file(platform)
    items = await read_snapshot(path)

    by_status = Counter(
        (item.get("status") or item.get("__status") or "unknown") if isinstance(item, dict) else "invalid"
        for item in items
    )
    missing = sum(1 for item in items if isinstance(item, dict) and item.get("consecutiveMisses"))

    print(f"Snapshot: {path}")
    print(f"Total records: {len(items)}")
    print(f"Records by status: {dict(by_status)}")
    print(f"Records with pending misses: {missing}")


async def purge(settings: MergeSettings, platform: str) -> None:
    """Apply the retention purge to a platform store right now."""
    path = settings.old_file(platform)
    listings, unreadable = [], []
    for item in await read_snapshot(path):
        try:
            listings.append(Listing.from_raw(item, platform))
        except ValidationError:
            unreadable.append(item)
    if not listings and not unreadable:
        print(f"No records found in {path}")
        return

    kept = purge_removed(listings, now_iso(settings.timezone), settings.retention_days)
    await write_snapshot(path, kept, passthrough=unreadable)

    print(f"Purged {len(listings) - len(kept)} records older than {settings.retention_days} days")
    print(f"Remaining records in snapshot: {len(kept) + len(unreadable)}")


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print("Usage:")
        print("  python scripts/snapshot_stats.py stats <platform>    # Show statistics")
        print("  python scripts/snapshot_stats.py purge <platform>    # Drop expired removed records")
        sys.exit(1)

    command, platform = sys.argv[1], sys.argv[2]
    settings = MergeSettings.from_config()

    if command == "stats":
        asyncio.run(show_stats(settings, platform))
    elif command == "purge":
        confirm = input(f"Purge expired records from {settings.old_file(platform)}? (yes/no): ")
        if confirm.lower() == "yes":
            asyncio.run(purge(settings, platform))
        else:
            print("Cancelled")
    else:
        print(f"Unknown command: {command}")
        sys.exit(1)
