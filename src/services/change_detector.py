# src/services/change_detector.py

"""Snapshot diffing: new listings, price drops and restocks."""

import logging

from src.models.change_set import ChangeSet, PriceDrop
from src.models.listing import Snapshot, StockStatus

logger = logging.getLogger("listing_watch.detector")


class ChangeDetector:
    """Compare two snapshots of one source group."""

    @staticmethod
    def detect(old: Snapshot, new: Snapshot) -> ChangeSet:
        """Classify every listing of ``new`` against ``old``.

        - id unknown to ``old``: added.
        - both prices determinate and the new one lower: price drop.
        - previously out of stock and now confirmed in stock: restock.

        Price drop and restock are evaluated independently, so one listing
        may land in both sequences. ``UNKNOWN`` stock never counts as a
        restock. Listings missing from ``new`` are not reported.

        Listings are visited in id order so the result depends only on
        the two snapshots.
        """
        if old.source_group != new.source_group:
            msg = (
                f"Cannot diff snapshots of different groups: "
                f"{old.source_group!r} vs {new.source_group!r}"
            )
            raise ValueError(msg)

        changes = ChangeSet(source_group=new.source_group)

        for listing_id in sorted(new.listings):
            current = new.listings[listing_id]
            previous = old.get(listing_id)
            if previous is None:
                changes.added.append(current)
                continue

            old_price = previous.price_numeric
            new_price = current.price_numeric
            if (
                old_price is not None
                and new_price is not None
                and new_price < old_price
            ):
                changes.price_dropped.append(
                    PriceDrop(
                        listing=current,
                        old_price=old_price,
                        new_price=new_price,
                    )
                )

            if (
                previous.in_stock is StockStatus.OUT_OF_STOCK
                and current.in_stock is StockStatus.IN_STOCK
            ):
                changes.restocked.append(current)

        delisted = sum(1 for lid in old.listings if lid not in new)
        if delisted:
            logger.info(
                "[%s] %d listings no longer in catalog (not reported)",
                new.source_group,
                delisted,
            )
        logger.debug("[%s] Detected %s", new.source_group, changes.summary())
        return changes
