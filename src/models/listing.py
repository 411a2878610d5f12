# src/models/listing.py

"""Listing and snapshot models shared by every pipeline stage."""

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from src.filters.price_parser import PriceParser

logger = logging.getLogger("listing_watch.models")

# Session / campaign params that vary between page loads
_TRACKING_PARAMS: frozenset[str] = frozenset({
    "ref", "utm_source", "utm_medium", "utm_campaign",
    "utm_term", "utm_content", "gclid", "fbclid",
    "promo", "bltgh", "bltgi", "cid", "sessionid",
})


def normalize_url(raw_url: str) -> str:
    """Strip tracking params, fragments and trailing slashes from a URL.

    Scheme and host are lowercased; the path keeps its case because some
    shops encode product codes in it.
    """
    if not raw_url:
        return ""
    parsed = urlparse(raw_url.strip())
    path = re.sub(r"/ref=[^/]*", "", parsed.path).rstrip("/")

    params = parse_qs(parsed.query, keep_blank_values=True)
    cleaned = {
        k: v for k, v in params.items()
        if k.lower() not in _TRACKING_PARAMS
    }
    new_query = urlencode(sorted(cleaned.items()), doseq=True) if cleaned else ""
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        path,
        parsed.params,
        new_query,
        "",
    ))


class StockStatus(Enum):
    """Explicit tri-state stock signal."""

    IN_STOCK = "in_stock"
    OUT_OF_STOCK = "out_of_stock"
    UNKNOWN = "unknown"

    @classmethod
    def from_flag(cls, value: bool | None) -> "StockStatus":
        """Map a nullable boolean (legacy storage) onto the enum."""
        if value is None:
            return cls.UNKNOWN
        return cls.IN_STOCK if value else cls.OUT_OF_STOCK

    def to_flag(self) -> bool | None:
        """Inverse of :meth:`from_flag`."""
        if self is StockStatus.UNKNOWN:
            return None
        return self is StockStatus.IN_STOCK


@dataclass
class Listing:
    """A single catalog listing, identified by its canonical URL."""

    id: str
    title: str
    url: str
    source_group: str
    price_raw: str = ""
    in_stock: StockStatus = StockStatus.UNKNOWN
    priority: bool = False
    last_seen_at: datetime | None = None

    @classmethod
    def from_url(
        cls,
        url: str,
        title: str,
        source_group: str,
        **kwargs: object,
    ) -> "Listing":
        """Build a listing whose id is derived from ``url``."""
        canonical = normalize_url(url)
        return cls(
            id=canonical,
            title=title,
            url=url,
            source_group=source_group,
            **kwargs,  # type: ignore[arg-type]
        )

    @property
    def price_numeric(self) -> float | None:
        """Parsed price, ``None`` when indeterminate."""
        return PriceParser.parse(self.price_raw)

    @property
    def needs_verification(self) -> bool:
        """True when stock is not confirmed or the price is unreadable."""
        return (
            self.in_stock is not StockStatus.IN_STOCK
            or self.price_numeric is None
        )


@dataclass
class Snapshot:
    """Last known-good listings of one source group, keyed by id."""

    source_group: str
    listings: dict[str, Listing] = field(
        default_factory=lambda: dict[str, Listing]()
    )
    taken_at: datetime | None = None

    @classmethod
    def from_listings(
        cls,
        source_group: str,
        listings: Iterable[Listing],
        taken_at: datetime | None = None,
    ) -> "Snapshot":
        """Build a snapshot, keeping the first listing seen per id.

        Listings belonging to another source group are rejected.
        """
        by_id: dict[str, Listing] = {}
        duplicates = 0
        foreign = 0
        for listing in listings:
            if listing.source_group != source_group:
                foreign += 1
                continue
            if listing.id in by_id:
                duplicates += 1
                continue
            by_id[listing.id] = listing
        if duplicates:
            logger.debug(
                "Snapshot %s: ignored %d duplicate ids",
                source_group,
                duplicates,
            )
        if foreign:
            logger.warning(
                "Snapshot %s: rejected %d listings from other groups",
                source_group,
                foreign,
            )
        return cls(
            source_group=source_group,
            listings=by_id,
            taken_at=taken_at,
        )

    def __len__(self) -> int:
        return len(self.listings)

    def __iter__(self) -> Iterator[Listing]:
        return iter(self.listings.values())

    def __contains__(self, listing_id: object) -> bool:
        return listing_id in self.listings

    def get(self, listing_id: str) -> Listing | None:
        """Return the listing with ``listing_id`` if present."""
        return self.listings.get(listing_id)

    def with_updates(
        self, updated: Iterable[Listing],
    ) -> "Snapshot":
        """Return a copy with ``updated`` listings replacing same-id ones."""
        merged = dict(self.listings)
        for listing in updated:
            if listing.id in merged:
                merged[listing.id] = listing
        return Snapshot(
            source_group=self.source_group,
            listings=merged,
            taken_at=datetime.now(),
        )
