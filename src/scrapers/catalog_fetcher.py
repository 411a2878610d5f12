# src/scrapers/catalog_fetcher.py

"""Selector-driven catalog fetcher for the configured source groups."""

import json
from datetime import datetime
from typing import Any
from urllib.parse import urlencode, urljoin, urlparse, parse_qs, urlunparse

from bs4 import BeautifulSoup, Tag

from src.config.settings import Settings
from src.models.listing import Listing, StockStatus
from src.models.result import Err, ErrorKind, Ok, Result
from src.scrapers.base_fetcher import BaseFetcher, Fetcher
from src.scrapers.session import BrowserSession


def load_selectors(path: Any = None) -> dict[str, dict[str, str]]:
    """Load per-group CSS selectors from selectors.json."""
    with open(path or Settings.SELECTORS_PATH, encoding="utf-8") as f:
        data: dict[str, dict[str, str]] = json.load(f)
    return data


def with_page(url: str, param: str, page: int) -> str:
    """Return ``url`` with ``param`` set to ``page``."""
    if page <= 1:
        return url
    parsed = urlparse(url)
    params = parse_qs(parsed.query, keep_blank_values=True)
    params[param] = [str(page)]
    return urlunparse(parsed._replace(query=urlencode(params, doseq=True)))


class SelectorCatalogFetcher(BaseFetcher, Fetcher):
    """Walks a group's paginated catalog and maps tiles to listings."""

    def __init__(
        self,
        browser: BrowserSession,
        groups: list[dict[str, Any]] | None = None,
        selectors: dict[str, dict[str, str]] | None = None,
    ) -> None:
        super().__init__(browser, "catalog")
        self.groups = {
            str(g["id"]): g for g in (groups or Settings.SOURCE_GROUPS)
        }
        self.selectors = selectors if selectors is not None else load_selectors()

    def _parse_tile(
        self,
        tile: Tag,
        group_id: str,
        sel: dict[str, str],
        seen_at: datetime,
    ) -> Listing | None:
        """Map one catalog tile to a listing; ``None`` when incomplete."""
        title_el = tile.select_one(sel["title"])
        link_el = tile.select_one(sel["link"])
        if title_el is None or link_el is None:
            return None
        title = title_el.get_text(" ", strip=True)
        href = str(link_el.get("href") or "")
        if not title or not href:
            return None

        price_el = tile.select_one(sel["price"]) if sel.get("price") else None
        price_raw = price_el.get_text(" ", strip=True) if price_el else ""

        tile_text = tile.get_text(" ", strip=True).lower()
        if sel.get("sold_out") and tile.select_one(sel["sold_out"]):
            in_stock = StockStatus.OUT_OF_STOCK
        elif any(p in tile_text for p in self.settings.SOLD_OUT_PHRASES):
            in_stock = StockStatus.OUT_OF_STOCK
        elif any(p in tile_text for p in self.settings.AVAILABLE_PHRASES):
            in_stock = StockStatus.IN_STOCK
        else:
            in_stock = StockStatus.UNKNOWN

        url = urljoin(sel.get("base_url", ""), href)
        return Listing.from_url(
            url,
            title=title,
            source_group=group_id,
            price_raw=price_raw,
            in_stock=in_stock,
            last_seen_at=seen_at,
        )

    def parse_catalog_page(
        self, html: str, group_id: str,
    ) -> list[Listing]:
        """Parse every tile on one catalog page."""
        sel = self.selectors.get(group_id, {})
        if not sel.get("container"):
            self.logger.error("[catalog] No selectors for group %s", group_id)
            return []
        soup = BeautifulSoup(html, "lxml")
        seen_at = datetime.now()
        listings: list[Listing] = []
        for tile in soup.select(sel["container"]):
            listing = self._parse_tile(tile, group_id, sel, seen_at)
            if listing is not None:
                listings.append(listing)
        return listings

    async def fetch_catalog(
        self, source_group: str,
    ) -> Result[list[Listing]]:
        """Fetch up to ``MAX_PAGES`` catalog pages for ``source_group``.

        A failing first page fails the whole fetch; a failure further
        down keeps what was collected so far.
        """
        group = self.groups.get(source_group)
        if group is None:
            return Err(ErrorKind.PARSE, f"unknown source group {source_group!r}")

        base_url = str(group["catalog_url"])
        page_param = str(group.get("page_param", "page"))
        listings: list[Listing] = []

        for page in range(1, self.settings.MAX_PAGES + 1):
            if page > 1:
                await self._wait()
            url = with_page(base_url, page_param, page)
            result = await self._get_text(url, source_group, referer=base_url)
            if isinstance(result, Err):
                if page == 1:
                    self.logger.error(
                        "[catalog] %s: first page failed (%s)",
                        source_group,
                        result,
                    )
                    return result
                self.logger.warning(
                    "[catalog] %s: page %d failed (%s), keeping %d listings",
                    source_group,
                    page,
                    result,
                    len(listings),
                )
                break

            on_page = self.parse_catalog_page(result.value, source_group)
            if not on_page:
                break
            listings.extend(on_page)

        self.logger.info(
            "[catalog] %s: fetched %d listings",
            source_group,
            len(listings),
        )
        return Ok(listings)
