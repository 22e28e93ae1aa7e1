"""Full outer join of persisted and freshly scraped keyed listings."""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from listing_merge.merge.identity import match_key
from listing_merge.models import Listing

logger = logging.getLogger(__name__)

JoinKey = tuple[str, str]


class MatchKind(str, Enum):
    ADDED = "added"
    MISSING = "missing"
    UPDATED = "updated"


@dataclass
class Match:
    kind: MatchKind
    key: JoinKey
    old: Optional[Listing] = None
    new: Optional[Listing] = None


@dataclass
class JoinResult:
    matches: list[Match] = field(default_factory=list)
    duplicate_keys: list[JoinKey] = field(default_factory=list)

    def count(self, kind: MatchKind) -> int:
        return sum(1 for m in self.matches if m.kind == kind)


def join_key(listing: Listing, platform: str) -> JoinKey:
    key = match_key(listing)
    if key is None:
        raise ValueError("Unkeyed listing cannot be joined")
    return (listing.platform or platform, key)


def full_outer_join(
    old_keyed: list[Listing],
    new_keyed: list[Listing],
    platform: str,
) -> JoinResult:
    """Pair persisted and new listings by (platform, match key).

    Every persisted listing appears in exactly one match. When the scrape
    repeats a key, its last occurrence wins and is flagged ``has_duplicates``.
    Persisted listings that share a key are each matched against the same new
    listing.
    """
    result = JoinResult()

    old_index: dict[JoinKey, list[Listing]] = {}
    for listing in old_keyed:
        old_index.setdefault(join_key(listing, platform), []).append(listing)

    new_index: dict[JoinKey, Listing] = {}
    for listing in new_keyed:
        key = join_key(listing, platform)
        if key in new_index:
            logger.warning(f"[{platform}] Duplicate key in new snapshot, keeping last: {key[1]}")
            result.duplicate_keys.append(key)
            listing = listing.model_copy(update={"has_duplicates": True})
        new_index[key] = listing

    for key, olds in old_index.items():
        new = new_index.get(key)
        for old in olds:
            if new is None:
                result.matches.append(Match(MatchKind.MISSING, key, old=old))
            else:
                result.matches.append(Match(MatchKind.UPDATED, key, old=old, new=new))

    for key, new in new_index.items():
        if key not in old_index:
            result.matches.append(Match(MatchKind.ADDED, key, new=new))

    return result
