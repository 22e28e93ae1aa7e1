"""Export merge counters to the CI environment file."""
import logging
from pathlib import Path
from typing import Optional

import aiofiles

from listing_merge.jobs.metrics import MergeStats

logger = logging.getLogger(__name__)


class CIEnvExporter:
    """Appends ``<PLATFORM>_<COUNTER>=<n>`` lines to a CI env file (e.g. $GITHUB_ENV)."""

    def __init__(self, env_file: Optional[Path]):
        self.env_file = Path(env_file) if env_file else None

    @property
    def enabled(self) -> bool:
        return self.env_file is not None

    def format_lines(self, stats: MergeStats) -> str:
        prefix = stats.platform.upper()
        values = {
            "ADDED": stats.get("added"),
            "UPDATED": stats.get("updated"),
            "REMOVED": stats.get("removed"),
            "TOTAL": stats.total,
        }
        return "".join(f"{prefix}_{name}={value}\n" for name, value in values.items())

    async def export(self, stats: MergeStats) -> None:
        """Append the counters for one platform run."""
        if not self.enabled:
            return
        async with aiofiles.open(self.env_file, "a", encoding="utf-8") as f:
            await f.write(self.format_lines(stats))
        logger.debug(f"Exported {stats.platform} counters to {self.env_file}")
