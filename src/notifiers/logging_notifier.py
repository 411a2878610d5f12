# src/notifiers/logging_notifier.py

"""Notifier that only writes to the run log."""

from collections.abc import Sequence

from src.models.change_set import NotificationKind
from src.models.result import Ok, Result
from src.notifiers.base_notifier import NotificationItem, Notifier, describe


class LoggingNotifier(Notifier):
    """Fallback channel used when no webhook is configured."""

    def __init__(self) -> None:
        super().__init__("log")
        self.delivered: list[tuple[NotificationKind, str]] = []

    def _deliver(
        self,
        kind: NotificationKind,
        items: Sequence[NotificationItem],
    ) -> Result[int]:
        for item in items:
            self.logger.info(describe(kind, item))
            self.delivered.append((kind, item.id))
        return Ok(len(items))
