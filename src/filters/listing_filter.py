# src/filters/listing_filter.py

"""Catalog filtering by required and excluded title keywords."""

import logging

from src.models.listing import Listing

logger = logging.getLogger("listing_watch.filters")


class ListingFilter:
    """Keep only the listings a source group is actually watching for."""

    @staticmethod
    def filter_by_keywords(
        listings: list[Listing],
        required_keywords: list[str],
        excluded_keywords: list[str],
    ) -> tuple[list[Listing], int]:
        """Drop listings missing every required keyword or hitting an excluded one.

        An empty ``required_keywords`` list accepts every title.
        Returns the kept listings and the count of excluded ones.
        """
        if not required_keywords and not excluded_keywords:
            return listings, 0

        required = [kw.lower() for kw in required_keywords]
        excluded_kw = [kw.lower() for kw in excluded_keywords]

        kept: list[Listing] = []
        excluded = 0
        for listing in listings:
            title_lower = listing.title.lower()
            if required and not any(kw in title_lower for kw in required):
                excluded += 1
            elif any(kw in title_lower for kw in excluded_kw):
                excluded += 1
            else:
                kept.append(listing)

        if excluded:
            logger.info(
                "Filtered out %d listings by keyword rules",
                excluded,
            )

        return kept, excluded
