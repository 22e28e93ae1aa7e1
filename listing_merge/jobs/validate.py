"""Validation report over merged platform stores."""
import argparse
import asyncio
import logging
import sys
from collections import Counter
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import aiofiles
import aiofiles.os
import orjson

from listing_merge.config import Config, MergeSettings, config
from listing_merge.logging_conf import setup_logging
from listing_merge.store.snapshot import read_snapshot
from listing_merge.timeutil import now_iso

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    platform: str
    total: int = 0
    valid: int = 0
    invalid: int = 0
    errors: dict[str, int] = field(default_factory=dict)

    @property
    def invalid_ratio(self) -> float:
        return self.invalid / self.total if self.total else 0.0


def _check_olx(item: dict[str, Any]) -> list[str]:
    link = item.get("link")
    if not isinstance(link, str) or "olx.com.br" not in link:
        return ["Invalid OLX link"]
    return []


def _check_zap(item: dict[str, Any]) -> list[str]:
    if not isinstance(item.get("description"), list):
        return ["Invalid description"]
    return []


PLATFORM_CHECKS = {
    "olx": _check_olx,
    "zap": _check_zap,
}


def validate_listing(item: dict[str, Any], platform: str) -> list[str]:
    """Return the problems found on one stored listing (empty when valid)."""
    errors = []

    address = item.get("address")
    if not isinstance(address, str) or not address.strip():
        errors.append("Missing or invalid address")

    price = item.get("price")
    if not isinstance(price, str) or not price:
        errors.append("Missing or invalid price")

    check = PLATFORM_CHECKS.get(platform)
    if check:
        errors.extend(check(item))

    images = item.get("images")
    if not isinstance(images, list):
        errors.append("Invalid image list")
    elif not images:
        errors.append("No images found")
    else:
        for index, image in enumerate(images, start=1):
            if not isinstance(image, str) or not image.startswith("http"):
                errors.append(f"Image {index} has an invalid URL")

    return errors


async def validate_platform(
    settings: MergeSettings,
    platform: str,
    write_report: bool = True,
) -> ValidationResult:
    """Validate one platform's merged store and optionally write its JSON report."""
    path = settings.old_file(platform)
    items = await read_snapshot(path)
    result = ValidationResult(platform=platform, total=len(items))
    summary: Counter = Counter()
    invalid_items = []

    for item in items:
        errors = validate_listing(item, platform) if isinstance(item, dict) else ["Not an object"]
        if errors:
            result.invalid += 1
            summary.update(errors)
            source = item if isinstance(item, dict) else {}
            invalid_items.append({
                "id": source.get("id") or "unknown",
                "address": source.get("address") or "unknown",
                "errors": errors,
            })
        else:
            result.valid += 1
    result.errors = dict(summary)

    logger.info(
        f"[{platform.upper()} Validation] Total: {result.total} | "
        f"Valid: {result.valid} | Invalid: {result.invalid}"
    )
    for error, count in summary.most_common():
        logger.info(f"  {error}: {count}")

    if write_report:
        report = {
            "timestamp": now_iso(settings.timezone),
            "platform": platform,
            "total": result.total,
            "valid": result.valid,
            "invalid": result.invalid,
            "errorSummary": result.errors,
            "invalidProperties": invalid_items,
        }
        await aiofiles.os.makedirs(settings.old_dir, exist_ok=True)
        report_path = Path(settings.old_dir) / f"{platform}ValidationReport.json"
        async with aiofiles.open(report_path, "wb") as f:
            await f.write(orjson.dumps(report, option=orjson.OPT_INDENT_2))
        logger.info(f"Validation report saved to {report_path}")

    return result


async def validate_all(
    settings: MergeSettings,
    max_invalid_ratio: float,
    write_report: bool = True,
) -> bool:
    """Validate every platform; False when any exceeds the invalid ratio."""
    ok = True
    for platform in settings.platforms:
        result = await validate_platform(settings, platform, write_report)
        if result.total > 0 and result.invalid_ratio > max_invalid_ratio:
            logger.error(f"CRITICAL: {platform} has too many invalid listings ({result.invalid_ratio:.0%})")
            ok = False
    return ok


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Validate merged listing stores")
    parser.add_argument(
        "--results-dir",
        type=Path,
        default=None,
        help=f"Merged store directory (default: {config.OLD_RESULTS_DIR})",
    )
    parser.add_argument(
        "--platform",
        action="append",
        default=None,
        help="Platform to validate (repeatable, default: PLATFORMS)",
    )
    parser.add_argument(
        "--max-invalid-ratio",
        type=float,
        default=config.MAX_INVALID_RATIO,
        help=f"Fail when more than this share is invalid (default: {config.MAX_INVALID_RATIO})",
    )
    parser.add_argument(
        "--no-report",
        action="store_true",
        help="Don't write <platform>ValidationReport.json files",
    )
    args = parser.parse_args(argv)

    setup_logging()
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    settings = MergeSettings.from_config().with_paths(old_dir=args.results_dir)
    if args.platform:
        settings = replace(settings, platforms=tuple(args.platform))

    if not asyncio.run(validate_all(settings, args.max_invalid_ratio, not args.no_report)):
        logger.error("Critical validation problems found")
        sys.exit(1)
    logger.info("Validation finished successfully")


if __name__ == "__main__":
    main()
