"""Field merge and status transitions for matched listings."""
import logging
from typing import Callable, Optional

from listing_merge.jobs.metrics import MergeStats
from listing_merge.merge.matcher import Match, MatchKind
from listing_merge.models import PROTECTED_FIELDS, Listing, ListingStatus, generate_listing_id

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]


def create_listing(new: Listing, now: str, id_factory: IdFactory = generate_listing_id) -> Listing:
    """First observation: fresh id and timestamps, whatever the scrape claimed."""
    payload = new.model_dump()
    payload.update(
        id=id_factory(),
        first_seen_at=now,
        last_seen_at=now,
        scraped_at=now,
        status=ListingStatus.ADDED,
        consecutive_misses=0,
    )
    if payload.get("images") is None:
        payload["images"] = []
    if payload.get("description") is None:
        payload["description"] = []
    return Listing.model_validate(payload)


def refresh_listing(
    old: Listing,
    new: Listing,
    now: str,
    id_factory: IdFactory = generate_listing_id,
) -> Listing:
    """Overlay a re-scrape onto the persisted listing.

    id, firstSeenAt and scrapedAt always come from the persisted record.
    Fields the scrape did not supply keep their persisted value; fields it
    supplied, null included, replace it.
    """
    overlay = {
        name: value
        for name, value in new.present_fields().items()
        if name not in PROTECTED_FIELDS
    }
    payload = old.model_dump()
    payload.update(overlay)
    payload.update(
        id=old.id or id_factory(),
        first_seen_at=old.first_seen_at or now,
        scraped_at=old.scraped_at or new.scraped_at or now,
        last_seen_at=now,
        status=ListingStatus.UPDATED,
        consecutive_misses=0,
    )
    return Listing.model_validate(payload)


def register_miss(old: Listing, miss_threshold: int) -> Listing:
    """Listing absent from this run's scrape; removal is never undone here."""
    misses = old.consecutive_misses + 1
    status = old.status or ListingStatus.UPDATED
    if status != ListingStatus.REMOVED and misses >= miss_threshold:
        status = ListingStatus.REMOVED
    return old.model_copy(update={"consecutive_misses": misses, "status": status})


def apply_match(
    match: Match,
    now: str,
    miss_threshold: int,
    stats: Optional[MergeStats] = None,
    id_factory: IdFactory = generate_listing_id,
) -> Listing:
    """Produce the next generation of a joined listing and count the transition."""
    stats = stats if stats is not None else MergeStats()
    platform, key = match.key

    if match.kind == MatchKind.ADDED:
        stats.increment("added")
        return create_listing(match.new, now, id_factory)

    if match.kind == MatchKind.UPDATED:
        if match.old.status == ListingStatus.REMOVED:
            stats.increment("reactivated")
            logger.info(f"[{platform}] Listing {key} (id {match.old.id}) reappeared, reactivating")
        stats.increment("updated")
        return refresh_listing(match.old, match.new, now, id_factory)

    missed = register_miss(match.old, miss_threshold)
    if match.old.status != ListingStatus.REMOVED and missed.status == ListingStatus.REMOVED:
        stats.increment("removed")
        logger.info(
            f"[{platform}] Listing {key} (id {missed.id}) marked removed "
            f"after {missed.consecutive_misses} misses"
        )
    elif missed.status != ListingStatus.REMOVED:
        stats.increment("still_missing")
        logger.info(
            f"[{platform}] Listing {key} (id {missed.id}) missing "
            f"({missed.consecutive_misses}/{miss_threshold})"
        )
    return missed
