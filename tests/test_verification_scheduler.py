# tests/test_verification_scheduler.py

"""Tests for the bounded verification worker pool."""

import asyncio
import unittest
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from src.models.listing import Listing, StockStatus
from src.models.result import Ok, Result
from src.scrapers.base_fetcher import DetailEvidence, DetailFetcher
from src.services.verification_scheduler import (
    VerificationScheduler,
    classify_stock,
)


def _make(n: int, **kwargs: Any) -> Listing:
    """Create an unverified listing numbered ``n``."""
    kwargs.setdefault("price_raw", "€ 5,00")
    return Listing.from_url(
        f"https://shop.nl/p/{n}",
        title=f"Booster {n}",
        source_group="bol",
        **kwargs,
    )


class FakeDetailFetcher(DetailFetcher):
    """Scripted detail pages keyed by URL.

    A page's behaviour is either body text, ``"hang"`` (never answers)
    or ``"raise"`` (connection error). Unknown URLs answer "op voorraad".
    """

    def __init__(
        self,
        behaviours: dict[str, str] | None = None,
        timeout: float = 0.05,
        on_read: Any = None,
    ) -> None:
        self.behaviours = behaviours or {}
        self.timeout = timeout
        self.on_read = on_read
        self.opened = 0
        self.closed = 0
        self.active = 0
        self.peak = 0
        self.calls: list[str] = []

    @asynccontextmanager
    async def _page(self, url: str) -> AsyncIterator[str]:
        self.opened += 1
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            yield url
        finally:
            self.active -= 1
            self.closed += 1

    def open_page(self, url: str) -> Any:
        return self._page(url)

    async def read_evidence(
        self, page: Any, url: str,
    ) -> Result[DetailEvidence]:
        self.calls.append(url)
        if self.on_read is not None:
            self.on_read(url)
        behaviour = self.behaviours.get(url, "Op voorraad, morgen in huis")
        await asyncio.sleep(0.01)
        if behaviour == "hang":
            await asyncio.sleep(60)
        if behaviour == "raise":
            msg = "connection reset"
            raise ConnectionError(msg)
        return Ok(DetailEvidence(body_text=behaviour))


def _scheduler(**kwargs: Any) -> VerificationScheduler:
    kwargs.setdefault("concurrency", 3)
    kwargs.setdefault("max_attempts", 2)
    return VerificationScheduler(backoff_range=(0.0, 0.0), **kwargs)


class TestClassifyStock(unittest.TestCase):
    """Evidence precedence."""

    sold_out = ["uitverkocht", "niet op voorraad"]
    available = ["op voorraad"]

    def test_sold_out_wins(self) -> None:
        text = "Niet op voorraad. Andere items op voorraad."
        self.assertIs(
            classify_stock(text, self.sold_out, self.available),
            StockStatus.OUT_OF_STOCK,
        )

    def test_available(self) -> None:
        self.assertIs(
            classify_stock("Op voorraad", self.sold_out, self.available),
            StockStatus.IN_STOCK,
        )

    def test_no_evidence_means_out_of_stock(self) -> None:
        self.assertIs(
            classify_stock("Bekijk de details", self.sold_out, self.available),
            StockStatus.OUT_OF_STOCK,
        )


class TestVerify(unittest.IsolatedAsyncioTestCase):
    """VerificationScheduler.verify behaviour."""

    async def test_every_listing_returned_once_for_any_width(self) -> None:
        listings = [_make(n) for n in range(12)]
        expected = sorted(l.id for l in listings)
        for width in (1, 3, 8, 50):
            with self.subTest(width=width):
                fetcher = FakeDetailFetcher()
                result = await _scheduler().verify(
                    listings, fetcher, concurrency=width,
                )
                self.assertEqual(sorted(l.id for l in result), expected)
                self.assertLessEqual(fetcher.peak, width)

    async def test_confirmed_listings_pass_through(self) -> None:
        confirmed = _make(1, in_stock=StockStatus.IN_STOCK)
        unknown = _make(2)
        fetcher = FakeDetailFetcher()
        scheduler = _scheduler()
        result = await scheduler.verify([confirmed, unknown], fetcher)
        self.assertEqual(fetcher.calls, [unknown.url])
        self.assertIn(confirmed, result)
        self.assertEqual(scheduler.last_report.passed_through, 1)
        self.assertEqual(scheduler.last_report.confirmed, 1)

    async def test_evidence_sets_status_and_timestamp(self) -> None:
        in_stock = _make(1)
        sold_out = _make(2)
        fetcher = FakeDetailFetcher({sold_out.url: "Helaas, uitverkocht"})
        result = {
            l.id: l
            for l in await _scheduler().verify([in_stock, sold_out], fetcher)
        }
        self.assertIs(result[in_stock.id].in_stock, StockStatus.IN_STOCK)
        self.assertIs(result[sold_out.id].in_stock, StockStatus.OUT_OF_STOCK)
        self.assertIsNotNone(result[in_stock.id].last_seen_at)

    async def test_missing_price_filled_from_evidence(self) -> None:
        listing = _make(1, price_raw="")

        class PricedFetcher(FakeDetailFetcher):
            async def read_evidence(
                self, page: Any, url: str,
            ) -> Result[DetailEvidence]:
                return Ok(DetailEvidence("op voorraad", price_raw="€ 7,50"))

        [result] = await _scheduler().verify([listing], PricedFetcher())
        self.assertEqual(result.price_numeric, 7.5)

    async def test_always_timeout_falls_back_to_out_of_stock(self) -> None:
        listing = _make(1)
        fetcher = FakeDetailFetcher({listing.url: "hang"})
        scheduler = _scheduler(max_attempts=2)
        [result] = await scheduler.verify([listing], fetcher)
        self.assertIs(result.in_stock, StockStatus.OUT_OF_STOCK)
        self.assertEqual(len(fetcher.calls), 2)
        self.assertEqual(scheduler.last_report.fell_back, 1)

    async def test_always_raising_falls_back_to_out_of_stock(self) -> None:
        listing = _make(1)
        fetcher = FakeDetailFetcher({listing.url: "raise"})
        [result] = await _scheduler(max_attempts=3).verify([listing], fetcher)
        self.assertIs(result.in_stock, StockStatus.OUT_OF_STOCK)
        self.assertEqual(len(fetcher.calls), 3)

    async def test_hanging_page_does_not_block_others(self) -> None:
        stuck = _make(0)
        others = [_make(n) for n in range(1, 11)]
        fetcher = FakeDetailFetcher({stuck.url: "hang"})
        result = await _scheduler(concurrency=3, max_attempts=1).verify(
            [stuck, *others], fetcher,
        )
        by_id = {l.id: l for l in result}
        self.assertEqual(len(by_id), 11)
        self.assertIs(by_id[stuck.id].in_stock, StockStatus.OUT_OF_STOCK)
        for listing in others:
            self.assertIs(by_id[listing.id].in_stock, StockStatus.IN_STOCK)

    async def test_page_handles_released_on_every_path(self) -> None:
        listings = [_make(n) for n in range(6)]
        fetcher = FakeDetailFetcher({
            listings[0].url: "hang",
            listings[1].url: "raise",
        })
        await _scheduler(concurrency=2, max_attempts=2).verify(
            listings, fetcher,
        )
        self.assertGreater(fetcher.opened, 0)
        self.assertEqual(fetcher.opened, fetcher.closed)
        self.assertEqual(fetcher.active, 0)

    async def test_empty_input(self) -> None:
        fetcher = FakeDetailFetcher()
        self.assertEqual(await _scheduler().verify([], fetcher), [])
        self.assertEqual(fetcher.calls, [])

    async def test_cancel_stops_dispatch_and_returns_rest_unchanged(self) -> None:
        listings = [_make(n) for n in range(5)]
        scheduler = _scheduler(concurrency=1)
        fetcher = FakeDetailFetcher(on_read=lambda _url: scheduler.cancel())
        result = await scheduler.verify(listings, fetcher)

        self.assertEqual(len(fetcher.calls), 1)
        self.assertEqual(
            sorted(l.id for l in result), sorted(l.id for l in listings),
        )
        untouched = [l for l in result if l.in_stock is StockStatus.UNKNOWN]
        self.assertEqual(len(untouched), 4)
        self.assertEqual(scheduler.last_report.not_dispatched, 4)
        self.assertTrue(scheduler.cancelled)


if __name__ == "__main__":
    unittest.main()
