"""Per-platform merge statistics."""
import logging
import time
from collections import defaultdict
from typing import Dict

logger = logging.getLogger(__name__)

COUNTERS = (
    "added",
    "updated",
    "removed",
    "reactivated",
    "still_missing",
    "preserved_unkeyed",
    "preserved_invalid",
    "purged",
    "skipped",
    "duplicate_keys",
)


class MergeStats:
    """Track what a single platform merge did."""

    def __init__(self, platform: str = ""):
        self.platform = platform
        self.start_time = time.time()
        self.counters: Dict[str, int] = defaultdict(int)
        self.total = 0

    def increment(self, key: str, amount: int = 1) -> None:
        """Increment a counter."""
        self.counters[key] += amount

    def get(self, key: str) -> int:
        return self.counters.get(key, 0)

    def report(self) -> None:
        """Log the merge outcome."""
        logger.info(
            f"[{self.platform.upper()} Merge Stats] "
            f"Added: {self.get('added')} | "
            f"Updated: {self.get('updated')} | "
            f"Removed: {self.get('removed')} | "
            f"Reactivated: {self.get('reactivated')} | "
            f"Still missing: {self.get('still_missing')} | "
            f"Preserved unkeyed: {self.get('preserved_unkeyed')} | "
            f"Preserved unreadable: {self.get('preserved_invalid')} | "
            f"Purged: {self.get('purged')} | "
            f"Skipped: {self.get('skipped')} | "
            f"Total: {self.total}"
        )

    def get_summary(self) -> Dict:
        """Get summary statistics."""
        summary = {key: self.get(key) for key in COUNTERS}
        summary["platform"] = self.platform
        summary["total"] = self.total
        summary["elapsed_seconds"] = round(time.time() - self.start_time, 3)
        return summary
