# src/filters/deduplicator.py

"""Listing deduplication by canonical id."""

import logging
from dataclasses import replace

from src.models.listing import Listing, StockStatus

logger = logging.getLogger("listing_watch.filters")


class ListingDeduplicator:
    """Collapse repeated listings (same canonical URL) into one."""

    @staticmethod
    def _merge(kept: Listing, dupe: Listing) -> Listing:
        """Return ``kept`` with its gaps filled from ``dupe``.

        Catalog pages sometimes repeat a listing as a sponsored tile
        without price or stock markers; the first occurrence wins but
        borrows whatever the repeat knows.
        """
        in_stock = kept.in_stock
        if in_stock is StockStatus.UNKNOWN:
            in_stock = dupe.in_stock
        return replace(
            kept,
            price_raw=kept.price_raw or dupe.price_raw,
            in_stock=in_stock,
            priority=kept.priority or dupe.priority,
        )

    @staticmethod
    def deduplicate(
        listings: list[Listing],
    ) -> tuple[list[Listing], int]:
        """Remove duplicate listings, keeping the first per id.

        Returns the deduplicated list and the count of removed dupes.
        """
        if not listings:
            return [], 0

        seen: dict[str, int] = {}
        kept: list[Listing] = []
        removed = 0

        for listing in listings:
            if listing.id in seen:
                idx = seen[listing.id]
                kept[idx] = ListingDeduplicator._merge(kept[idx], listing)
                removed += 1
                continue
            seen[listing.id] = len(kept)
            kept.append(listing)

        if removed:
            logger.info(
                "Deduplication removed %d duplicate listings",
                removed,
            )

        return kept, removed
