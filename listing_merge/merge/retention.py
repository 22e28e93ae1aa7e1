"""Retention purge of long-removed listings."""
import logging
import math
from datetime import datetime, timezone
from typing import Iterable

from listing_merge.models import Listing, ListingStatus
from listing_merge.timeutil import parse_timestamp

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def days_since(last_seen: datetime, now: datetime) -> int:
    """Whole days elapsed, rounded up."""
    return math.ceil((now - last_seen).total_seconds() / SECONDS_PER_DAY)


def is_expired(listing: Listing, now: datetime, retention_days: int) -> bool:
    if listing.status != ListingStatus.REMOVED:
        return False
    last_seen = parse_timestamp(listing.last_seen_at)
    if last_seen is None:
        # no evidence of age, keep it
        return False
    return days_since(last_seen, now) > retention_days


def purge_removed(listings: Iterable[Listing], now: str | datetime, retention_days: int) -> list[Listing]:
    """Drop removed listings whose last sighting is older than the retention window."""
    now_dt = parse_timestamp(now) if isinstance(now, str) else now
    if now_dt is None:
        raise ValueError(f"Invalid reference timestamp: {now!r}")
    if now_dt.tzinfo is None:
        now_dt = now_dt.replace(tzinfo=timezone.utc)

    kept = []
    for listing in listings:
        if is_expired(listing, now_dt, retention_days):
            logger.info(f"Purging listing {listing.id} (removed, last seen {listing.last_seen_at})")
            continue
        kept.append(listing)
    return kept
