# src/notifiers/base_notifier.py

"""Notifier interface shared by every delivery channel."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Union

from src.models.change_set import NotificationKind, PriceDrop
from src.models.listing import Listing
from src.models.result import Ok, Result

NotificationItem = Union[Listing, PriceDrop]


def describe(kind: NotificationKind, item: NotificationItem) -> str:
    """One plain-text line per notified listing."""
    if isinstance(item, PriceDrop):
        listing = item.listing
        price = f"{item.old_price:.2f} -> {item.new_price:.2f}"
    else:
        listing = item
        price = listing.price_raw or "price unknown"
    label = {
        NotificationKind.ADDED: "New",
        NotificationKind.PRICE_DROP: "Price drop",
        NotificationKind.RESTOCK: "Back in stock",
    }[kind]
    return f"{label}: {listing.title} [{listing.source_group}] {price} {listing.url}"


class Notifier(ABC):
    """Delivers one kind of delta for a batch of listings.

    :meth:`notify` drops repeated listing ids within a call so channels
    stay idempotent per listing; empty batches never reach a channel.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = logging.getLogger(f"listing_watch.notify.{name}")

    @abstractmethod
    def _deliver(
        self,
        kind: NotificationKind,
        items: Sequence[NotificationItem],
    ) -> Result[int]:
        """Send ``items``; ``Ok`` carries the number delivered."""
        ...

    def notify(
        self,
        kind: NotificationKind,
        items: Sequence[NotificationItem],
    ) -> Result[int]:
        """Deliver ``items`` once per listing id."""
        seen: set[str] = set()
        unique: list[NotificationItem] = []
        for item in items:
            if item.id in seen:
                continue
            seen.add(item.id)
            unique.append(item)
        if not unique:
            return Ok(0)
        return self._deliver(kind, unique)

    def close(self) -> None:
        """Release transport resources."""
