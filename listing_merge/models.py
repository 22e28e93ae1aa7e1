"""Data models for reconciled listing records."""
import time
import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ListingStatus(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    MISSING = "missing"
    REMOVED = "removed"


# Never taken from a re-scrape of a known listing
PROTECTED_FIELDS = frozenset({"id", "first_seen_at", "scraped_at"})


def generate_listing_id() -> str:
    """New listing id, e.g. ``prop_1744520733345_5f1c2a9e``."""
    return f"prop_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class Listing(BaseModel):
    """Listing record as stored in a platform snapshot.

    Core fields are typed and serialized under their camelCase names.
    Whatever else a scraper emits lands in ``model_extra`` and is written
    back untouched.
    """

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: Optional[str] = None
    link: Optional[str] = None
    platform: Optional[str] = None
    address: Optional[Any] = None
    price: Optional[Any] = None
    description: Optional[Any] = None
    images: Optional[list[str]] = None
    coords: Optional[dict[str, Any]] = None
    publish_date: Optional[str] = None

    first_seen_at: Optional[str] = None
    last_seen_at: Optional[str] = None
    scraped_at: Optional[str] = None
    status: Optional[ListingStatus] = Field(
        default=None,
        validation_alias=AliasChoices("status", "__status"),
        serialization_alias="status",
    )
    consecutive_misses: int = 0
    has_duplicates: bool = False

    @field_validator("consecutive_misses", mode="before")
    @classmethod
    def _misses_default(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("has_duplicates", mode="before")
    @classmethod
    def _duplicates_default(cls, value: Any) -> Any:
        return False if value is None else value

    @classmethod
    def from_raw(cls, raw: dict[str, Any], platform: str) -> "Listing":
        """Validate a raw snapshot object, defaulting its platform to the run's."""
        listing = cls.model_validate(raw)
        if not listing.platform:
            listing.platform = platform
        return listing

    def present_fields(self) -> dict[str, Any]:
        """Fields actually supplied on input (attribute names), plus extras."""
        declared = type(self).model_fields
        values = {name: getattr(self, name) for name in self.model_fields_set if name in declared}
        values.update(self.model_extra or {})
        return values

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
