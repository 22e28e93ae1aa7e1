"""Cleanup of scraper error screenshots after a successful merge."""
import argparse
import asyncio
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
import orjson

from listing_merge.config import config
from listing_merge.logging_conf import setup_logging

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = (".png", ".jpg", ".jpeg")


async def cleanup_screenshots(
    screenshots_dir: Path,
    logs_dir: Path,
    dry_run: bool = False,
) -> list[str]:
    """Delete error screenshots, recording their names in a backup log first.

    Returns the names of the files deleted (or that would be, in dry-run).
    """
    if not await aiofiles.os.path.isdir(screenshots_dir):
        logger.info(f"Screenshots directory not found: {screenshots_dir}. Nothing to clean")
        return []

    names = sorted(
        name for name in await aiofiles.os.listdir(screenshots_dir)
        if name.lower().endswith(IMAGE_SUFFIXES)
    )
    if not names:
        logger.info("No error screenshots found")
        return []

    if dry_run:
        for name in names:
            logger.info(f"Would delete {name}")
        return names

    await aiofiles.os.makedirs(logs_dir, exist_ok=True)
    log_path = Path(logs_dir) / f"cleanup-{int(time.time() * 1000)}.json"
    backup_log = {
        "date": datetime.now(timezone.utc).isoformat(),
        "deletedFiles": names,
        "count": len(names),
    }
    async with aiofiles.open(log_path, "wb") as f:
        await f.write(orjson.dumps(backup_log, option=orjson.OPT_INDENT_2))

    for name in names:
        await aiofiles.os.remove(Path(screenshots_dir) / name)
        logger.info(f"Deleted {name}")

    logger.info(f"Cleanup complete: {len(names)} files, backup log at {log_path}")
    return names


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Cleanup scraper error screenshots")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without actually deleting",
    )
    parser.add_argument(
        "--screenshots-dir",
        type=Path,
        default=config.SCREENSHOTS_DIR,
        help=f"Screenshots directory (default: {config.SCREENSHOTS_DIR})",
    )
    parser.add_argument(
        "--logs-dir",
        type=Path,
        default=config.LOGS_DIR,
        help=f"Directory for the cleanup backup log (default: {config.LOGS_DIR})",
    )
    args = parser.parse_args(argv)

    setup_logging()
    asyncio.run(cleanup_screenshots(args.screenshots_dir, args.logs_dir, args.dry_run))


if __name__ == "__main__":
    main()
