"""Logging setup shared by the CLI entry points."""
import logging
import sys
from typing import Optional

from listing_merge.config import config

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the root logger from LOG_LEVEL (or an explicit level)."""
    logging.basicConfig(
        level=(level or config.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        stream=sys.stdout,
        force=True,
    )
