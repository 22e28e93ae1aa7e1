"""Match keys and keyed/unkeyed partitioning."""
from dataclasses import dataclass, field
from typing import Iterable, Optional

from listing_merge.models import Listing


def match_key(listing: Listing) -> Optional[str]:
    """Key used to correlate a listing across runs.

    The canonical link when the scrape has one, otherwise the first image
    URL. Listings with neither are unkeyed.
    """
    link = listing.link.strip() if isinstance(listing.link, str) else ""
    if link:
        return link
    if listing.images:
        first = listing.images[0]
        if isinstance(first, str) and first.strip():
            return first.strip()
    return None


@dataclass
class Partition:
    keyed: list[Listing] = field(default_factory=list)
    unkeyed: list[Listing] = field(default_factory=list)


def partition(listings: Iterable[Listing]) -> Partition:
    """Split a batch into keyed and unkeyed listings, keeping input order."""
    result = Partition()
    for listing in listings:
        if match_key(listing) is None:
            result.unkeyed.append(listing)
        else:
            result.keyed.append(listing)
    return result
