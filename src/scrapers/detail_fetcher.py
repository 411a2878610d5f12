# src/scrapers/detail_fetcher.py

"""Detail-page evidence over the shared HTTP session."""

from contextlib import AbstractAsyncContextManager
from typing import Any

from bs4 import BeautifulSoup

from src.models.result import Err, ErrorKind, Ok, Result
from src.scrapers.base_fetcher import BaseFetcher, DetailEvidence, DetailFetcher
from src.scrapers.session import BrowserSession


class HttpDetailFetcher(DetailFetcher):
    """Reads a detail page's visible text (and price, if a selector is known)."""

    def __init__(
        self,
        browser: BrowserSession,
        price_selectors: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> None:
        self.browser = browser
        self.price_selectors = price_selectors or {}
        if timeout is not None:
            self.timeout = timeout
        self._pages = BaseFetcher(browser, "detail")

    def open_page(self, url: str) -> AbstractAsyncContextManager[Any]:
        return self.browser.page(url)

    def _price_for(self, soup: BeautifulSoup, url: str) -> str | None:
        for host, selector in self.price_selectors.items():
            if host in url:
                el = soup.select_one(selector)
                if el is not None:
                    return el.get_text(" ", strip=True) or None
        return None

    async def read_evidence(
        self, page: Any, url: str,
    ) -> Result[DetailEvidence]:
        if page.status_code != 200:
            return Err(ErrorKind.NETWORK, f"HTTP {page.status_code}")

        raw: bytes = await page.acontent()
        html = raw.decode(page.encoding or "utf-8", errors="replace")
        if self._pages.is_blocked_page(html):
            return Err(ErrorKind.BLOCKED, "challenge page")

        soup = BeautifulSoup(html, "lxml")
        body = soup.body or soup
        text = body.get_text(" ", strip=True).lower()
        if not text:
            return Err(ErrorKind.PARSE, "empty body")
        return Ok(DetailEvidence(body_text=text, price_raw=self._price_for(soup, url)))
