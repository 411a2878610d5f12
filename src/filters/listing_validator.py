# src/filters/listing_validator.py

"""Listing validation, drops listings that cannot be tracked."""

import logging

from src.models.listing import Listing

logger = logging.getLogger("listing_watch.filters")


class ListingValidator:
    """Validate listings and drop those with missing essential fields."""

    @staticmethod
    def validate(
        listings: list[Listing],
    ) -> tuple[list[Listing], int]:
        """Drop listings with an empty title or without a usable id.

        A missing price is *not* a reason to drop: the price stays
        indeterminate and the listing is queued for verification.
        Returns the valid listings and the count of dropped items.
        """
        valid: list[Listing] = []
        dropped = 0

        for listing in listings:
            if not listing.title.strip():
                logger.debug(
                    "Dropped listing with empty title "
                    "(group=%s, url=%s)",
                    listing.source_group,
                    listing.url,
                )
                dropped += 1
                continue
            if not listing.id:
                logger.debug(
                    "Dropped listing without canonical url "
                    "(title=%s, group=%s)",
                    listing.title,
                    listing.source_group,
                )
                dropped += 1
                continue
            valid.append(listing)

        if dropped:
            logger.info(
                "Validation dropped %d invalid listings",
                dropped,
            )

        return valid, dropped
