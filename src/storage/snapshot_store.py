# src/storage/snapshot_store.py

"""Snapshot persistence interface and listing (de)serialisation."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from src.models.listing import Listing, Snapshot, StockStatus, normalize_url
from src.models.result import Result


def listing_to_dict(listing: Listing) -> dict[str, Any]:
    """Serialise a listing to plain JSON-compatible values."""
    return {
        "id": listing.id,
        "title": listing.title,
        "url": listing.url,
        "source_group": listing.source_group,
        "price_raw": listing.price_raw,
        "in_stock": listing.in_stock.value,
        "priority": listing.priority,
        "last_seen_at": (
            listing.last_seen_at.isoformat()
            if listing.last_seen_at
            else None
        ),
    }


def _stock_from_value(value: object) -> StockStatus:
    """Accept the enum value or a legacy nullable boolean."""
    if isinstance(value, bool) or value is None:
        return StockStatus.from_flag(value)
    try:
        return StockStatus(str(value))
    except ValueError:
        return StockStatus.UNKNOWN


def listing_from_dict(
    row: dict[str, Any], source_group: str,
) -> Listing:
    """Rebuild a listing, also reading the legacy ``link``/``price``/``inStock`` keys."""
    url = str(row.get("url") or row.get("link") or "")
    seen_raw = row.get("last_seen_at") or row.get("lastSeen")
    last_seen = None
    if seen_raw:
        try:
            last_seen = datetime.fromisoformat(str(seen_raw).replace("Z", "+00:00"))
        except ValueError:
            last_seen = None
    stock_raw = row["in_stock"] if "in_stock" in row else row.get("inStock")
    return Listing(
        id=str(row.get("id") or normalize_url(url)),
        title=str(row.get("title", "")),
        url=url,
        source_group=str(row.get("source_group") or source_group),
        price_raw=str(row.get("price_raw") or row.get("price") or ""),
        in_stock=_stock_from_value(stock_raw),
        priority=bool(row.get("priority", False)),
        last_seen_at=last_seen,
    )


class SnapshotStore(ABC):
    """Loads and atomically replaces the last known-good snapshot per group."""

    @abstractmethod
    def load(self, source_group: str) -> Snapshot:
        """Return the stored snapshot, or an empty one. Never raises."""
        ...

    @abstractmethod
    def persist(self, snapshot: Snapshot) -> Result[int]:
        """Replace the stored snapshot; ``Ok`` carries the listing count."""
        ...

    def close(self) -> None:
        """Release backend resources."""
