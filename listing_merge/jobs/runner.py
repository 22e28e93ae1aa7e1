"""Merge runner reconciling each platform's new scrape into its persisted store."""
import logging
import uuid
from typing import Any, Optional

from pydantic import ValidationError

from listing_merge.config import MergeSettings
from listing_merge.jobs.ci_export import CIEnvExporter
from listing_merge.jobs.metrics import MergeStats
from listing_merge.merge.identity import partition
from listing_merge.merge.lifecycle import IdFactory, apply_match, create_listing
from listing_merge.merge.matcher import full_outer_join
from listing_merge.merge.retention import purge_removed
from listing_merge.models import Listing, ListingStatus, generate_listing_id
from listing_merge.store.snapshot import dedupe_by_id, read_snapshot, write_snapshot
from listing_merge.timeutil import now_iso

logger = logging.getLogger(__name__)


class MergeRunner:
    """Runs the reconciliation pipeline once per configured platform."""

    def __init__(
        self,
        settings: MergeSettings,
        now: Optional[str] = None,
        id_factory: IdFactory = generate_listing_id,
        exporter: Optional[CIEnvExporter] = None,
    ):
        self.settings = settings
        self.now = now
        self.id_factory = id_factory
        self.exporter = exporter or CIEnvExporter(settings.ci_env_file)
        self.run_id = str(uuid.uuid4())
        logger.info(f"Run ID: {self.run_id}")

    async def run(self) -> dict[str, dict]:
        """Merge every platform in order; the first write failure aborts the run."""
        summaries = {}
        for platform in self.settings.platforms:
            logger.info(f"Processing {platform.upper()}...")
            summaries[platform] = await self.merge_platform(platform)
        logger.info("Merge complete")
        return summaries

    async def merge_platform(self, platform: str) -> dict:
        """Reconcile one platform and persist the result."""
        now = self.now or now_iso(self.settings.timezone)
        stats = MergeStats(platform)
        old_path = self.settings.old_file(platform)
        new_path = self.settings.new_file(platform)

        logger.info(f"[{platform}] Loading persisted listings from {old_path.resolve()}")
        old_raw = await read_snapshot(old_path)
        logger.info(f"[{platform}] Loading new scrape from {new_path.resolve()}")
        new_raw = await read_snapshot(new_path)
        logger.info(f"[{platform}] Persisted: {len(old_raw)} | New: {len(new_raw)}")

        old_listings, unreadable = self._load_listings(old_raw, platform, stats, persisted=True)
        new_listings, _ = self._load_listings(new_raw, platform, stats)
        stats.increment("preserved_invalid", len(unreadable))

        merged = self.reconcile(old_listings, new_listings, platform, now, stats)

        kept = purge_removed(merged, now, self.settings.retention_days)
        stats.increment("purged", len(merged) - len(kept))

        final = dedupe_by_id(kept)
        stats.total = len(final) + len(unreadable)

        await write_snapshot(old_path, final, passthrough=unreadable)
        await self.exporter.export(stats)
        stats.report()
        return stats.get_summary()

    def reconcile(
        self,
        old_listings: list[Listing],
        new_listings: list[Listing],
        platform: str,
        now: str,
        stats: MergeStats,
    ) -> list[Listing]:
        """Join, transition and collect the next generation (before purge)."""
        old_part = partition(old_listings)
        new_part = partition(new_listings)

        # unkeyed: nothing proves absence, carry as-is
        merged = list(old_part.unkeyed)
        stats.increment("preserved_unkeyed", len(old_part.unkeyed))

        for listing in new_part.unkeyed:
            try:
                merged.append(create_listing(listing, now, self.id_factory))
                stats.increment("added")
            except (ValidationError, TypeError, ValueError) as e:
                stats.increment("skipped")
                logger.error(f"[{platform}] Skipping unkeyed listing: {e}")

        join = full_outer_join(old_part.keyed, new_part.keyed, platform)
        stats.increment("duplicate_keys", len(join.duplicate_keys))

        for match in join.matches:
            try:
                merged.append(
                    apply_match(match, now, self.settings.miss_threshold, stats, self.id_factory)
                )
            except (ValidationError, TypeError, ValueError) as e:
                stats.increment("skipped")
                logger.error(f"[{platform}] Error merging {match.kind.value} listing {match.key[1]}: {e}")
                if match.old is not None:
                    merged.append(match.old)

        return merged

    def _load_listings(
        self,
        raw_items: list[Any],
        platform: str,
        stats: MergeStats,
        persisted: bool = False,
    ) -> tuple[list[Listing], list[Any]]:
        """Validate raw snapshot entries.

        Returns the readable listings and the raw entries that could not be
        read. Unreadable scrape entries are skipped; unreadable persisted ones
        stay out of the merge but are written back untouched. Persisted
        listings also get an id and a status when older tooling left them out.
        """
        listings = []
        unreadable = []
        for index, raw in enumerate(raw_items):
            listing = None
            if not isinstance(raw, dict):
                logger.error(f"[{platform}] Entry {index} is not an object")
            else:
                try:
                    listing = Listing.from_raw(raw, platform)
                except ValidationError as e:
                    logger.error(f"[{platform}] Invalid listing at index {index}: {e}")

            if listing is None:
                if persisted:
                    logger.warning(f"[{platform}] Keeping persisted entry {index} unchanged")
                    unreadable.append(raw)
                else:
                    stats.increment("skipped")
                continue

            if persisted:
                if not listing.id:
                    listing.id = self.id_factory()
                    logger.debug(f"[{platform}] Assigned id {listing.id} to persisted entry {index}")
                if listing.status is None:
                    listing.status = ListingStatus.UPDATED
            listings.append(listing)
        return listings, unreadable
