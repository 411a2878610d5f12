# src/notifiers/webhook_notifier.py

"""Chat webhook notifier (one URL per notification kind)."""

import time
from collections.abc import Sequence

from curl_cffi import requests as curl_requests

from src.config.settings import Settings
from src.models.change_set import NotificationKind
from src.models.result import Err, ErrorKind, Ok, Result
from src.notifiers.base_notifier import NotificationItem, Notifier, describe

# Chat webhooks reject messages above 2000 characters
_MAX_MESSAGE_CHARS = 1900


class WebhookNotifier(Notifier):
    """Posts plain-text batches to a webhook per kind.

    Items are grouped ``NOTIFY_BATCH_SIZE`` per message with a short
    pause between messages to stay under the webhook rate limit. A
    failed batch is logged and the remaining batches are still sent.
    """

    def __init__(
        self,
        urls: dict[NotificationKind, str] | None = None,
        session: curl_requests.Session | None = None,
    ) -> None:
        super().__init__("webhook")
        self.settings = Settings()
        self.urls = urls if urls is not None else {
            NotificationKind.ADDED: self.settings.WEBHOOK_NEW,
            NotificationKind.PRICE_DROP: self.settings.WEBHOOK_PRICE,
            NotificationKind.RESTOCK: self.settings.WEBHOOK_RESTOCK,
        }
        self.session = session or curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )

    @staticmethod
    def configured() -> bool:
        """True when at least one webhook URL is set."""
        return any((
            Settings.WEBHOOK_NEW,
            Settings.WEBHOOK_PRICE,
            Settings.WEBHOOK_RESTOCK,
        ))

    def _post(self, url: str, content: str) -> bool:
        try:
            resp = self.session.post(
                url,
                json={"content": content[:_MAX_MESSAGE_CHARS]},
                timeout=self.settings.REQUEST_TIMEOUT,
            )
        except Exception as exc:
            self.logger.error(
                "Webhook post failed: %s", exc, exc_info=True,
            )
            return False
        if resp.status_code >= 300:
            self.logger.error(
                "Webhook responded with HTTP %d: %s",
                resp.status_code,
                str(resp.text)[:200],
            )
            return False
        return True

    def _deliver(
        self,
        kind: NotificationKind,
        items: Sequence[NotificationItem],
    ) -> Result[int]:
        url = self.urls.get(kind, "")
        if not url:
            self.logger.error("No webhook URL configured for %s", kind.value)
            return Err(ErrorKind.DELIVERY, f"no webhook for {kind.value}")

        size = max(1, self.settings.NOTIFY_BATCH_SIZE)
        batches = [items[i:i + size] for i in range(0, len(items), size)]
        delivered = 0
        failed = 0
        for n, batch in enumerate(batches):
            if n:
                time.sleep(self.settings.NOTIFY_BATCH_DELAY)
            content = "\n".join(describe(kind, item) for item in batch)
            if self._post(url, content):
                delivered += len(batch)
            else:
                failed += len(batch)

        self.logger.info(
            "Webhook %s: %d delivered, %d failed",
            kind.value,
            delivered,
            failed,
        )
        if failed:
            return Err(
                ErrorKind.DELIVERY,
                f"{failed} of {len(items)} {kind.value} notifications failed",
            )
        return Ok(delivered)

    def close(self) -> None:
        self.session.close()
