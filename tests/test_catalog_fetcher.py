# tests/test_catalog_fetcher.py

"""Tests for SelectorCatalogFetcher parsing and pagination."""

import unittest
from typing import Any
from unittest.mock import MagicMock

from src.models.listing import StockStatus
from src.models.result import Err, ErrorKind, Ok
from src.scrapers.catalog_fetcher import (
    SelectorCatalogFetcher,
    load_selectors,
    with_page,
)

CATALOG_URL = "https://shop.nl/c/pokemon"

SELECTORS = {
    "shop": {
        "container": ".tile",
        "title": ".title",
        "link": "a.link",
        "price": ".price",
        "sold_out": ".badge--soldout",
        "base_url": "https://shop.nl",
    },
}

GROUPS: list[dict[str, Any]] = [
    {"id": "shop", "catalog_url": CATALOG_URL, "page_param": "page"},
]


def _tile(n: int, extra: str = "", price: str = "€ 4,99") -> str:
    return (
        f'<div class="tile">'
        f'<a class="link" href="/p/booster-{n}/?utm_source=grid">'
        f'<span class="title">Pokemon Booster {n}</span></a>'
        f'<span class="price">{price}</span>{extra}</div>'
    )


def _page(*tiles: str) -> str:
    return f"<html><body><main>{''.join(tiles)}</main></body></html>"


def _response(status_code: int = 200, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text
    return resp


class FakeBrowser:
    """Serves canned responses by URL; unknown URLs get an empty page."""

    def __init__(self, pages: dict[str, Any]) -> None:
        self.pages = pages
        self.requested: list[str] = []

    async def get(self, url: str, referer: str | None = None) -> Any:
        self.requested.append(url)
        outcome = self.pages.get(url, _response(200, _page()))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _fetcher(pages: dict[str, Any]) -> SelectorCatalogFetcher:
    fetcher = SelectorCatalogFetcher(
        FakeBrowser(pages),  # type: ignore[arg-type]
        groups=GROUPS,
        selectors=SELECTORS,
    )
    fetcher.settings.REQUEST_DELAY = 0.0
    fetcher._current_delay = 0.0
    return fetcher


class TestHelpers(unittest.TestCase):
    """Module-level helpers."""

    def test_first_page_url_unchanged(self) -> None:
        self.assertEqual(with_page(CATALOG_URL, "page", 1), CATALOG_URL)

    def test_page_param_added(self) -> None:
        self.assertEqual(
            with_page(CATALOG_URL, "page", 3), f"{CATALOG_URL}?page=3",
        )

    def test_page_param_replaced_and_others_kept(self) -> None:
        url = "https://shop.nl/s/?searchtext=pokemon&page=1"
        result = with_page(url, "page", 2)
        self.assertIn("searchtext=pokemon", result)
        self.assertIn("page=2", result)
        self.assertNotIn("page=1", result)

    def test_bundled_selectors_load(self) -> None:
        selectors = load_selectors()
        self.assertIn("bol", selectors)
        self.assertIn("container", selectors["bol"])


class TestParseCatalogPage(unittest.TestCase):
    """Tile to listing mapping."""

    def setUp(self) -> None:
        self.fetcher = _fetcher({})

    def test_basic_fields(self) -> None:
        [listing] = self.fetcher.parse_catalog_page(_page(_tile(1)), "shop")
        self.assertEqual(listing.title, "Pokemon Booster 1")
        self.assertEqual(listing.url, "https://shop.nl/p/booster-1/?utm_source=grid")
        self.assertEqual(listing.id, "https://shop.nl/p/booster-1")
        self.assertEqual(listing.price_raw, "€ 4,99")
        self.assertEqual(listing.source_group, "shop")
        self.assertIsNotNone(listing.last_seen_at)

    def test_stock_markers(self) -> None:
        html = _page(
            _tile(1, '<span class="badge--soldout">!</span>'),
            _tile(2, "<p>Tijdelijk uitverkocht</p>"),
            _tile(3, "<p>Op voorraad</p>"),
            _tile(4),
        )
        statuses = [
            l.in_stock for l in self.fetcher.parse_catalog_page(html, "shop")
        ]
        self.assertEqual(statuses, [
            StockStatus.OUT_OF_STOCK,
            StockStatus.OUT_OF_STOCK,
            StockStatus.IN_STOCK,
            StockStatus.UNKNOWN,
        ])

    def test_missing_price_kept_as_empty(self) -> None:
        html = _page(
            '<div class="tile"><a class="link" href="/p/x">'
            '<span class="title">Pokemon Tin</span></a></div>'
        )
        [listing] = self.fetcher.parse_catalog_page(html, "shop")
        self.assertEqual(listing.price_raw, "")
        self.assertIsNone(listing.price_numeric)

    def test_incomplete_tiles_skipped(self) -> None:
        html = _page(
            '<div class="tile"><span class="title">No link</span></div>',
            '<div class="tile"><a class="link" href="/p/y"></a></div>',
            _tile(5),
        )
        listings = self.fetcher.parse_catalog_page(html, "shop")
        self.assertEqual([l.title for l in listings], ["Pokemon Booster 5"])

    def test_unknown_group_has_no_selectors(self) -> None:
        self.assertEqual(
            self.fetcher.parse_catalog_page(_page(_tile(1)), "nope"), [],
        )


class TestFetchCatalog(unittest.IsolatedAsyncioTestCase):
    """Pagination and error handling."""

    async def test_walks_pages_until_empty(self) -> None:
        fetcher = _fetcher({
            CATALOG_URL: _response(200, _page(_tile(1), _tile(2))),
            f"{CATALOG_URL}?page=2": _response(200, _page(_tile(3))),
        })
        result = await fetcher.fetch_catalog("shop")
        assert isinstance(result, Ok)
        self.assertEqual(len(result.value), 3)
        self.assertEqual(
            fetcher.browser.requested,  # type: ignore[attr-defined]
            [CATALOG_URL, f"{CATALOG_URL}?page=2", f"{CATALOG_URL}?page=3"],
        )

    async def test_page_limit(self) -> None:
        pages = {CATALOG_URL: _response(200, _page(_tile(0)))}
        for n in range(2, 6):
            pages[f"{CATALOG_URL}?page={n}"] = _response(200, _page(_tile(n)))
        fetcher = _fetcher(pages)
        fetcher.settings.MAX_PAGES = 2
        result = await fetcher.fetch_catalog("shop")
        assert isinstance(result, Ok)
        self.assertEqual(len(result.value), 2)

    async def test_first_page_failure_is_err(self) -> None:
        fetcher = _fetcher({CATALOG_URL: _response(503)})
        result = await fetcher.fetch_catalog("shop")
        self.assertIsInstance(result, Err)
        self.assertIs(result.kind, ErrorKind.NETWORK)  # type: ignore[union-attr]
        self.assertEqual(
            len(fetcher.browser.requested),  # type: ignore[attr-defined]
            fetcher.settings.MAX_RETRIES,
        )

    async def test_later_page_failure_keeps_collected(self) -> None:
        fetcher = _fetcher({
            CATALOG_URL: _response(200, _page(_tile(1))),
            f"{CATALOG_URL}?page=2": _response(500),
        })
        result = await fetcher.fetch_catalog("shop")
        assert isinstance(result, Ok)
        self.assertEqual(len(result.value), 1)

    async def test_challenge_page_is_blocked(self) -> None:
        fetcher = _fetcher({
            CATALOG_URL: _response(
                200, "<html><body>Please verify you are human</body></html>",
            ),
        })
        result = await fetcher.fetch_catalog("shop")
        self.assertIsInstance(result, Err)
        self.assertIs(result.kind, ErrorKind.BLOCKED)  # type: ignore[union-attr]

    async def test_transport_error_retried(self) -> None:
        fetcher = _fetcher({CATALOG_URL: ConnectionError("reset")})
        result = await fetcher.fetch_catalog("shop")
        self.assertIsInstance(result, Err)
        self.assertEqual(
            len(fetcher.browser.requested),  # type: ignore[attr-defined]
            fetcher.settings.MAX_RETRIES,
        )

    async def test_circuit_opens_after_repeated_failures(self) -> None:
        fetcher = _fetcher({CATALOG_URL: _response(503)})
        fetcher.settings.CIRCUIT_BREAKER_THRESHOLD = 2
        await fetcher.fetch_catalog("shop")
        await fetcher.fetch_catalog("shop")
        requested = len(fetcher.browser.requested)  # type: ignore[attr-defined]

        result = await fetcher.fetch_catalog("shop")
        self.assertIs(result.kind, ErrorKind.BLOCKED)  # type: ignore[union-attr]
        self.assertEqual(
            len(fetcher.browser.requested),  # type: ignore[attr-defined]
            requested,
        )

    async def test_unknown_group(self) -> None:
        result = await _fetcher({}).fetch_catalog("nope")
        self.assertIsInstance(result, Err)
        self.assertIs(result.kind, ErrorKind.PARSE)  # type: ignore[union-attr]


if __name__ == "__main__":
    unittest.main()
