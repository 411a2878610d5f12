# src/scrapers/session.py

"""Long-lived HTTP session shared by every fetcher of one process."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from curl_cffi.requests import AsyncSession

from src.config.settings import Settings

logger = logging.getLogger("listing_watch.session")


class BrowserSession:
    """Owns one browser-impersonating ``AsyncSession``.

    The session is created lazily and shared read-mostly by catalog and
    detail fetchers. Per-task page handles come from :meth:`page` and are
    closed on every exit path. The owner (the run coordinator) calls
    :meth:`close` once at shutdown.
    """

    def __init__(
        self,
        impersonate: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.impersonate = impersonate or Settings.IMPERSONATE_BROWSER
        self.timeout = timeout or Settings.REQUEST_TIMEOUT
        self._session: AsyncSession | None = None
        self._closed = False
        self.open_pages = 0

    @property
    def session(self) -> AsyncSession:
        """The underlying session, created on first use."""
        if self._closed:
            msg = "BrowserSession already closed"
            raise RuntimeError(msg)
        if self._session is None:
            logger.info(
                "Opening shared session (impersonate=%s)",
                self.impersonate,
            )
            self._session = AsyncSession(
                impersonate=self.impersonate,  # type: ignore[arg-type]
                timeout=self.timeout,
            )
        return self._session

    @property
    def closed(self) -> bool:
        return self._closed

    def _headers(self, referer: str | None) -> dict[str, str]:
        headers = dict(Settings.DEFAULT_HEADERS)
        if referer:
            headers["Referer"] = referer
        return headers

    async def get(
        self, url: str, referer: str | None = None,
    ) -> Any:
        """Plain GET returning a fully-read response."""
        return await self.session.get(
            url,
            headers=self._headers(referer),
            timeout=self.timeout,
        )

    @asynccontextmanager
    async def page(
        self, url: str, referer: str | None = None,
    ) -> AsyncIterator[Any]:
        """Open a streamed response scoped to one task."""
        resp = await self.session.get(
            url,
            headers=self._headers(referer),
            timeout=self.timeout,
            stream=True,
        )
        self.open_pages += 1
        try:
            yield resp
        finally:
            self.open_pages -= 1
            try:
                await resp.aclose()
            except Exception:
                logger.warning(
                    "Failed to release page handle for %s",
                    url,
                    exc_info=True,
                )

    async def close(self) -> None:
        """Close the shared session. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._session is not None:
            logger.info("Closing shared session")
            await self._session.close()
            self._session = None
