"""Reading and writing platform snapshot files."""
import logging
from pathlib import Path
from typing import Any, Iterable

import aiofiles
import aiofiles.os
import orjson

from listing_merge.models import Listing

logger = logging.getLogger(__name__)


async def read_snapshot(path: Path) -> list[Any]:
    """Read a JSON array snapshot.

    Never raises: a missing, empty, unreadable or non-array file yields an
    empty list and a log line.
    """
    path = Path(path)
    if not await aiofiles.os.path.exists(path):
        logger.warning(f"Snapshot not found: {path}")
        return []

    try:
        async with aiofiles.open(path, "rb") as f:
            content = await f.read()
    except OSError as e:
        logger.error(f"Error reading snapshot {path}: {e}")
        return []

    if not content.strip():
        logger.warning(f"Snapshot is empty: {path}")
        return []

    try:
        data = orjson.loads(content)
    except orjson.JSONDecodeError as e:
        logger.error(f"Error parsing snapshot {path}: {e}")
        return []

    if not isinstance(data, list):
        logger.warning(f"Snapshot is not a JSON array: {path}")
        return []

    return data


def dedupe_by_id(listings: Iterable[Listing]) -> list[Listing]:
    """Keep one listing per id; the last occurrence wins, first position is kept."""
    unique: dict[str, Listing] = {}
    for listing in listings:
        if listing.id in unique:
            logger.warning(f"Duplicate listing id {listing.id}, keeping last occurrence")
        unique[listing.id] = listing
    return list(unique.values())


async def write_snapshot(path: Path, listings: list[Listing], passthrough: Iterable[Any] = ()) -> int:
    """Atomically replace the snapshot at ``path``. Returns the number of entries written.

    ``passthrough`` entries are raw objects written back exactly as they were
    read, after the listings. The payload goes to a sibling temp file first;
    the original file is only replaced once the write has completed.
    """
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")
    entries = [listing.to_json_dict() for listing in listings]
    entries.extend(passthrough)
    payload = orjson.dumps(entries, option=orjson.OPT_INDENT_2)

    await aiofiles.os.makedirs(path.parent, exist_ok=True)
    try:
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(payload)
        await aiofiles.os.replace(tmp_path, path)
    except Exception:
        if await aiofiles.os.path.exists(tmp_path):
            await aiofiles.os.remove(tmp_path)
        raise

    logger.info(f"Saved {len(entries)} listings to {path}")
    return len(entries)
