# src/services/verification_scheduler.py

"""Bounded-concurrency live re-checks for listings with uncertain stock."""

import asyncio
import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime

from src.config.settings import Settings
from src.models.listing import Listing, StockStatus
from src.models.result import Err, ErrorKind, Ok, Result
from src.scrapers.base_fetcher import DetailEvidence, DetailFetcher

logger = logging.getLogger("listing_watch.verification")


@dataclass
class VerificationTask:
    """One listing awaiting a live check, owned by a single worker."""

    listing: Listing
    attempts: int = 0


@dataclass
class VerificationReport:
    """Tally of the most recent :meth:`VerificationScheduler.verify` call."""

    requested: int = 0
    passed_through: int = 0
    confirmed: int = 0
    fell_back: int = 0
    not_dispatched: int = 0


def classify_stock(
    body_text: str,
    sold_out_phrases: Sequence[str],
    available_phrases: Sequence[str],
) -> StockStatus:
    """Layered evidence: sold-out phrase, then available phrase, else out.

    Without either phrase the listing is treated as out of stock; a
    missed restock costs less than a false "available" alert.
    """
    text = body_text.lower()
    if any(phrase in text for phrase in sold_out_phrases):
        return StockStatus.OUT_OF_STOCK
    if any(phrase in text for phrase in available_phrases):
        return StockStatus.IN_STOCK
    return StockStatus.OUT_OF_STOCK


class VerificationScheduler:
    """Runs a fixed-size pool of detail checks with retry and cancellation.

    Only listings that need verification (stock not confirmed, or price
    indeterminate) cost a page load; everything else passes straight
    through. Each failed attempt is retried after a jittered pause until
    the attempt budget runs out, after which the listing resolves to
    ``OUT_OF_STOCK``. :meth:`cancel` stops handing out new tasks; tasks
    already started run to completion and undispatched listings come
    back unchanged.
    """

    def __init__(
        self,
        concurrency: int | None = None,
        max_attempts: int | None = None,
        backoff_range: tuple[float, float] | None = None,
        sold_out_phrases: Sequence[str] | None = None,
        available_phrases: Sequence[str] | None = None,
    ) -> None:
        self.concurrency = concurrency or Settings.VERIFY_CONCURRENCY
        self.max_attempts = max(1, max_attempts or Settings.VERIFY_MAX_ATTEMPTS)
        self.backoff_range = (
            backoff_range
            if backoff_range is not None
            else Settings.VERIFY_BACKOFF_RANGE
        )
        self.sold_out_phrases = [
            p.lower() for p in (sold_out_phrases or Settings.SOLD_OUT_PHRASES)
        ]
        self.available_phrases = [
            p.lower() for p in (available_phrases or Settings.AVAILABLE_PHRASES)
        ]
        self._cancel = asyncio.Event()
        self.last_report = VerificationReport()

    # ── Cancellation ─────────────────────────────────────

    def cancel(self) -> None:
        """Stop dispatching tasks that have not started yet."""
        if not self._cancel.is_set():
            logger.info("Verification dispatch cancelled")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    # ── Per-task logic ───────────────────────────────────

    def _apply_evidence(
        self, listing: Listing, evidence: DetailEvidence,
    ) -> Listing:
        """Copy ``listing`` with the stock status read from ``evidence``."""
        status = classify_stock(
            evidence.body_text,
            self.sold_out_phrases,
            self.available_phrases,
        )
        price_raw = listing.price_raw
        if listing.price_numeric is None and evidence.price_raw:
            price_raw = evidence.price_raw
        return replace(
            listing,
            in_stock=status,
            price_raw=price_raw,
            last_seen_at=datetime.now(),
        )

    async def _attempt(
        self, task: VerificationTask, fetcher: DetailFetcher,
    ) -> Result[DetailEvidence]:
        task.attempts += 1
        try:
            return await fetcher.fetch_detail_status(task.listing.url)
        except Exception as exc:
            logger.warning(
                "Detail fetch raised for %s: %s",
                task.listing.url,
                exc,
                exc_info=True,
            )
            return Err(ErrorKind.NETWORK, str(exc)[:200])

    async def _run_task(
        self, task: VerificationTask, fetcher: DetailFetcher,
    ) -> tuple[Listing, bool]:
        """Resolve one task; the flag is False when the fallback was used."""
        while True:
            outcome = await self._attempt(task, fetcher)
            if isinstance(outcome, Ok):
                updated = self._apply_evidence(task.listing, outcome.value)
                logger.debug(
                    "Verified %s -> %s (attempt %d)",
                    task.listing.id,
                    updated.in_stock.value,
                    task.attempts,
                )
                return updated, True

            logger.warning(
                "Verification attempt %d/%d failed for %s: %s",
                task.attempts,
                self.max_attempts,
                task.listing.url,
                outcome,
            )
            if task.attempts >= self.max_attempts:
                logger.warning(
                    "Giving up on %s, assuming out of stock",
                    task.listing.url,
                )
                return replace(
                    task.listing,
                    in_stock=StockStatus.OUT_OF_STOCK,
                    last_seen_at=datetime.now(),
                ), False

            low, high = self.backoff_range
            await asyncio.sleep(random.uniform(low, high))

    async def _worker(
        self,
        worker_id: int,
        queue: "asyncio.Queue[VerificationTask]",
        fetcher: DetailFetcher,
        results: list[Listing],
        report: VerificationReport,
    ) -> None:
        while not self._cancel.is_set():
            try:
                task = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            listing, confirmed = await self._run_task(task, fetcher)
            results.append(listing)
            if confirmed:
                report.confirmed += 1
            else:
                report.fell_back += 1
            queue.task_done()
        logger.debug("Worker %d stopped by cancellation", worker_id)

    # ── Public API ───────────────────────────────────────

    async def verify(
        self,
        listings: Sequence[Listing],
        fetcher: DetailFetcher,
        concurrency: int | None = None,
    ) -> list[Listing]:
        """Re-check uncertain listings and return every input exactly once.

        Output order is unspecified: pass-through listings first, then
        verified ones in completion order, then any left undispatched
        by a cancellation.
        """
        report = VerificationReport(requested=len(listings))
        results: list[Listing] = []
        queue: asyncio.Queue[VerificationTask] = asyncio.Queue()

        for listing in listings:
            if listing.needs_verification:
                queue.put_nowait(VerificationTask(listing=listing))
            else:
                results.append(listing)
        report.passed_through = len(results)

        pending = queue.qsize()
        if pending:
            width = max(1, min(concurrency or self.concurrency, pending))
            logger.info(
                "Verifying %d of %d listings with %d workers",
                pending,
                len(listings),
                width,
            )
            await asyncio.gather(*(
                self._worker(n, queue, fetcher, results, report)
                for n in range(width)
            ))

        while not queue.empty():
            results.append(queue.get_nowait().listing)
            report.not_dispatched += 1
        if report.not_dispatched:
            logger.warning(
                "%d listings left unverified after cancellation",
                report.not_dispatched,
            )

        self.last_report = report
        return results
