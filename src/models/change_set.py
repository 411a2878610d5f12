# src/models/change_set.py

"""Classified output of one detection pass."""

from dataclasses import dataclass, field
from enum import Enum

from src.models.listing import Listing


class NotificationKind(Enum):
    """Delta classes a notifier can be asked to deliver."""

    ADDED = "added"
    PRICE_DROP = "price_drop"
    RESTOCK = "restock"


@dataclass
class PriceDrop:
    """A listing whose determinate price fell since the last snapshot."""

    listing: Listing
    old_price: float
    new_price: float

    @property
    def id(self) -> str:
        return self.listing.id


@dataclass
class ChangeSet:
    """New listings, price drops and restocks detected in one pass."""

    source_group: str
    added: list[Listing] = field(
        default_factory=lambda: list[Listing]()
    )
    price_dropped: list[PriceDrop] = field(
        default_factory=lambda: list[PriceDrop]()
    )
    restocked: list[Listing] = field(
        default_factory=lambda: list[Listing]()
    )

    def is_empty(self) -> bool:
        """True when nothing changed."""
        return not (self.added or self.price_dropped or self.restocked)

    def summary(self) -> str:
        """Short human-readable tally for log lines."""
        return (
            f"{len(self.added)} new, "
            f"{len(self.price_dropped)} price drops, "
            f"{len(self.restocked)} restocks"
        )
