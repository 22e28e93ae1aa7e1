"""Main entry point with CLI."""
import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Optional

from listing_merge.config import Config, MergeSettings, config
from listing_merge.jobs.runner import MergeRunner
from listing_merge.logging_conf import setup_logging
from listing_merge.store.screenshot_cleanup import cleanup_screenshots

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Merge freshly scraped listings into the persisted store")

    # Paths
    parser.add_argument(
        "--old-dir",
        default=None,
        help=f"Persisted store directory (default: {config.OLD_RESULTS_DIR})",
    )
    parser.add_argument(
        "--new-dir",
        default=None,
        help=f"Scraper output directory (default: {config.NEW_RESULTS_DIR})",
    )
    parser.add_argument(
        "--platform",
        action="append",
        default=None,
        help=f"Platform to merge, repeatable (default: {','.join(config.PLATFORMS)})",
    )

    # Policy
    parser.add_argument(
        "--miss-threshold",
        type=int,
        default=None,
        help=f"Consecutive misses before a listing is removed (default: {config.MISS_THRESHOLD})",
    )
    parser.add_argument(
        "--retention-days",
        type=int,
        default=None,
        help=f"Days a removed listing is kept (default: {config.RETENTION_DAYS})",
    )
    parser.add_argument(
        "--now",
        default=None,
        help="Override the run timestamp (ISO-8601), mainly for replays",
    )

    # Side effects
    parser.add_argument(
        "--no-ci-export",
        action="store_true",
        help="Don't append counters to $GITHUB_ENV",
    )
    parser.add_argument(
        "--cleanup-screenshots",
        action="store_true",
        help="Delete scraper error screenshots after a successful merge",
    )

    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> MergeSettings:
    settings = MergeSettings.from_config().with_paths(args.old_dir, args.new_dir)
    overrides = {}
    if args.platform:
        overrides["platforms"] = tuple(p.lower() for p in args.platform)
    if args.miss_threshold is not None:
        overrides["miss_threshold"] = args.miss_threshold
    if args.retention_days is not None:
        overrides["retention_days"] = args.retention_days
    if args.no_ci_export:
        overrides["ci_env_file"] = None
    return replace(settings, **overrides)


async def run_pipeline(settings: MergeSettings, now: Optional[str] = None, cleanup: bool = False) -> dict:
    summaries = await MergeRunner(settings, now=now).run()
    if cleanup:
        await cleanup_screenshots(settings.screenshots_dir, settings.logs_dir)
    return summaries


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    setup_logging()
    args = parse_args(argv)

    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    settings = build_settings(args)
    if settings.miss_threshold < 1 or settings.retention_days < 0:
        logger.error("--miss-threshold must be >= 1 and --retention-days >= 0")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info("Listing merge starting")
    logger.info(f"OLD: {settings.old_dir}")
    logger.info(f"NEW: {settings.new_dir}")
    logger.info(f"Platforms: {', '.join(settings.platforms)}")
    logger.info(f"Miss threshold: {settings.miss_threshold}")
    logger.info(f"Retention days: {settings.retention_days}")
    logger.info(f"CI export: {settings.ci_env_file or 'disabled'}")
    logger.info("=" * 60)

    try:
        asyncio.run(run_pipeline(settings, now=args.now, cleanup=args.cleanup_screenshots))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error during merge: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
