# src/services/scan_orchestrator.py

"""One monitoring pass per source group: fetch, verify, diff, notify, save."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from src.config.settings import Settings
from src.filters.deduplicator import ListingDeduplicator
from src.filters.listing_filter import ListingFilter
from src.filters.listing_validator import ListingValidator
from src.models.change_set import ChangeSet, NotificationKind
from src.models.listing import Listing, Snapshot, StockStatus
from src.models.result import Err, ErrorKind, Result
from src.notifiers.base_notifier import NotificationItem, Notifier
from src.scrapers.base_fetcher import DetailFetcher, Fetcher
from src.services.change_detector import ChangeDetector
from src.services.verification_scheduler import VerificationScheduler
from src.storage.snapshot_store import SnapshotStore

logger = logging.getLogger("listing_watch.orchestrator")


@dataclass
class PassReport:
    """Outcome of one pass over one source group."""

    kind: str
    source_group: str
    changes: ChangeSet | None = None
    fetched: int = 0
    checked: int = 0
    skipped: bool = False
    persisted: bool = False
    notified: dict[str, int] = field(
        default_factory=lambda: dict[str, int]()
    )
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )

    @property
    def failed(self) -> bool:
        """True when the pass ran but its snapshot was not saved."""
        return not self.skipped and not self.persisted


class ScanOrchestrator:
    """Runs the full-scan and stock-check pipelines."""

    def __init__(
        self,
        fetcher: Fetcher,
        detail_fetcher: DetailFetcher,
        store: SnapshotStore,
        notifier: Notifier,
        scheduler: VerificationScheduler | None = None,
        groups: list[dict[str, Any]] | None = None,
    ) -> None:
        self.settings = Settings()
        self.fetcher = fetcher
        self.detail_fetcher = detail_fetcher
        self.store = store
        self.notifier = notifier
        self.scheduler = scheduler or VerificationScheduler()
        self.groups: list[dict[str, Any]] = (
            groups if groups is not None else Settings.SOURCE_GROUPS
        )

    @property
    def group_ids(self) -> list[str]:
        return [str(g["id"]) for g in self.groups]

    def _group(self, source_group: str) -> dict[str, Any]:
        for g in self.groups:
            if g["id"] == source_group:
                return g
        return {"id": source_group}

    # ── Private helpers ──────────────────────────────────

    def _is_priority(self, listing: Listing, old: Snapshot) -> bool:
        previous = old.get(listing.id)
        if previous is not None and previous.priority:
            return True
        title = listing.title.lower()
        return any(kw in title for kw in self.settings.PRIORITY_KEYWORDS)

    @staticmethod
    def _keep_known_stock(listing: Listing, old: Snapshot) -> Listing:
        """Restore the stored status of a listing whose check never ran."""
        if listing.in_stock is not StockStatus.UNKNOWN:
            return listing
        previous = old.get(listing.id)
        if previous is None or previous.in_stock is StockStatus.UNKNOWN:
            return listing
        return replace(listing, in_stock=previous.in_stock)

    def _clean(
        self, listings: list[Listing], source_group: str,
    ) -> list[Listing]:
        """Validate, keyword-filter and deduplicate a fetched catalog."""
        group = self._group(source_group)
        valid, _ = ListingValidator.validate(listings)
        kept, _ = ListingFilter.filter_by_keywords(
            valid,
            list(group.get("required_keywords", [])),
            list(group.get("excluded_keywords", [])),
        )
        unique, _ = ListingDeduplicator.deduplicate(kept)
        return unique

    async def _fetch(self, source_group: str) -> Result[list[Listing]]:
        try:
            return await self.fetcher.fetch_catalog(source_group)
        except Exception as exc:
            logger.error(
                "Fetcher raised for %s: %s",
                source_group,
                exc,
                exc_info=True,
            )
            return Err(ErrorKind.NETWORK, str(exc)[:200])

    def _capped(
        self, items: Sequence[NotificationItem],
    ) -> Sequence[NotificationItem]:
        cap = self.settings.MAX_NOTIFY
        return items[:cap] if cap > 0 else items

    async def _notify(
        self,
        report: PassReport,
        batches: list[tuple[NotificationKind, Sequence[NotificationItem]]],
    ) -> None:
        """Call the notifier at most once per kind, skipping empty batches."""
        for kind, items in batches:
            if not items:
                continue
            try:
                result = await asyncio.to_thread(
                    self.notifier.notify, kind, self._capped(items),
                )
            except Exception as exc:
                logger.error(
                    "Notifier raised for %s/%s: %s",
                    report.source_group,
                    kind.value,
                    exc,
                    exc_info=True,
                )
                report.errors.append(f"notify {kind.value}: {exc}")
                continue
            if isinstance(result, Err):
                report.errors.append(f"notify {kind.value}: {result}")
            else:
                report.notified[kind.value] = result.value

    async def _persist(self, report: PassReport, snapshot: Snapshot) -> None:
        try:
            result = await asyncio.to_thread(self.store.persist, snapshot)
        except Exception as exc:
            logger.error(
                "Store raised for %s: %s",
                snapshot.source_group,
                exc,
                exc_info=True,
            )
            report.errors.append(f"persist: {exc}")
            return
        if isinstance(result, Err):
            logger.error(
                "Snapshot for %s not saved (%s); next pass starts "
                "from the previous snapshot",
                snapshot.source_group,
                result,
            )
            report.errors.append(f"persist: {result}")
            return
        report.persisted = True

    # ── Full scan ────────────────────────────────────────

    async def full_scan(self, source_group: str) -> PassReport:
        """Fetch the catalog, verify uncertain listings, diff, notify, save.

        A failed or empty fetch leaves the stored snapshot untouched.
        Notifications go out before the snapshot is saved, so a failed
        save may cause the same delta to be reported again next pass.
        Listings left unchecked by a cancellation keep their stored
        stock status instead of the catalog's ``UNKNOWN``.
        """
        report = PassReport(kind="full_scan", source_group=source_group)
        old = await asyncio.to_thread(self.store.load, source_group)

        fetched = await self._fetch(source_group)
        if isinstance(fetched, Err):
            logger.error("Full scan of %s skipped: %s", source_group, fetched)
            report.skipped = True
            report.errors.append(f"fetch: {fetched}")
            return report

        report.fetched = len(fetched.value)
        listings = self._clean(fetched.value, source_group)
        if not listings:
            logger.warning(
                "Full scan of %s returned no usable listings, keeping "
                "previous snapshot",
                source_group,
            )
            report.skipped = True
            return report

        listings = [
            replace(l, priority=self._is_priority(l, old)) for l in listings
        ]
        verified = await self.scheduler.verify(listings, self.detail_fetcher)
        if self.scheduler.last_report.not_dispatched:
            verified = [self._keep_known_stock(l, old) for l in verified]
        report.checked = (
            self.scheduler.last_report.confirmed
            + self.scheduler.last_report.fell_back
        )

        new = Snapshot.from_listings(
            source_group, verified, taken_at=datetime.now(),
        )
        changes = ChangeDetector.detect(old, new)
        report.changes = changes

        if changes.is_empty():
            logger.info("No changes for %s", source_group)
        else:
            logger.info("Changes for %s: %s", source_group, changes.summary())
            await self._notify(report, [
                (NotificationKind.ADDED, changes.added),
                (NotificationKind.PRICE_DROP, changes.price_dropped),
                (NotificationKind.RESTOCK, changes.restocked),
            ])

        await self._persist(report, new)
        return report

    async def full_scan_all(self) -> list[PassReport]:
        """Full scan of every configured group, one after another."""
        return [await self.full_scan(g) for g in self.group_ids]

    # ── Fast stock check ─────────────────────────────────

    async def stock_check(
        self, source_group: str, include_regular: bool,
    ) -> PassReport:
        """Re-verify stored listings and report restocks only.

        Priority listings are always checked; the rest only when
        ``include_regular`` is set.
        """
        report = PassReport(kind="stock_check", source_group=source_group)
        snapshot = await asyncio.to_thread(self.store.load, source_group)
        if not len(snapshot):
            logger.info("No stored listings for %s yet", source_group)
            report.skipped = True
            return report

        candidates = [
            l for l in snapshot if l.priority or include_regular
        ]
        if not candidates:
            report.skipped = True
            return report

        priority_count = sum(1 for l in candidates if l.priority)
        logger.info(
            "Checking %d listings (%d priority) from %s",
            len(candidates),
            priority_count,
            source_group,
        )
        updated = await self.scheduler.verify(candidates, self.detail_fetcher)
        report.checked = (
            self.scheduler.last_report.confirmed
            + self.scheduler.last_report.fell_back
        )

        new = snapshot.with_updates(updated)
        changes = ChangeDetector.detect(snapshot, new)
        report.changes = ChangeSet(
            source_group=source_group, restocked=changes.restocked,
        )

        await self._persist(report, new)
        if changes.restocked:
            logger.info(
                "%d restocked at %s", len(changes.restocked), source_group,
            )
            await self._notify(
                report, [(NotificationKind.RESTOCK, changes.restocked)],
            )
        return report

    async def stock_check_all(
        self, include_regular: bool,
    ) -> list[PassReport]:
        """Stock check of every configured group, one after another."""
        return [
            await self.stock_check(g, include_regular)
            for g in self.group_ids
        ]
