# src/cli/runner.py

"""Wires the collaborators together and runs the monitor."""

import logging
from urllib.parse import urlparse

from rich.console import Console
from rich.table import Table

from src.config.settings import ConfigurationError, Settings
from src.notifiers.base_notifier import Notifier
from src.notifiers.logging_notifier import LoggingNotifier
from src.notifiers.webhook_notifier import WebhookNotifier
from src.scrapers.catalog_fetcher import SelectorCatalogFetcher, load_selectors
from src.scrapers.detail_fetcher import HttpDetailFetcher
from src.scrapers.session import BrowserSession
from src.services.run_coordinator import RunCoordinator, TaskKind
from src.services.scan_orchestrator import PassReport, ScanOrchestrator
from src.services.verification_scheduler import VerificationScheduler
from src.storage.json_snapshot_store import JsonSnapshotStore
from src.storage.snapshot_store import SnapshotStore
from src.storage.sqlite_snapshot_store import SqliteSnapshotStore

logger = logging.getLogger("listing_watch.cli")

# Stderr console for status messages
_err = Console(stderr=True)


def build_store(backend: str | None = None) -> SnapshotStore:
    """Instantiate the configured snapshot backend."""
    name = (backend or Settings.SNAPSHOT_BACKEND).strip().lower()
    if name == "json":
        return JsonSnapshotStore()
    if name == "sqlite":
        return SqliteSnapshotStore()
    msg = f"Unknown SNAPSHOT_BACKEND {name!r} (expected 'json' or 'sqlite')"
    raise ConfigurationError(msg)


def build_notifier() -> Notifier:
    """Webhook delivery when configured, otherwise log-only."""
    if WebhookNotifier.configured():
        return WebhookNotifier()
    logger.warning("No webhook URLs configured; notifications go to the log only")
    return LoggingNotifier()


def build_coordinator(backend: str | None = None) -> RunCoordinator:
    """Create every collaborator and hand their ownership to the coordinator."""
    if not Settings.SOURCE_GROUPS:
        msg = "No source groups configured"
        raise ConfigurationError(msg)
    try:
        selectors = load_selectors()
    except (OSError, ValueError) as exc:
        msg = f"Cannot read selectors from {Settings.SELECTORS_PATH}: {exc}"
        raise ConfigurationError(msg) from exc

    store = build_store(backend)
    notifier = build_notifier()
    browser = BrowserSession()
    price_selectors = {
        urlparse(sel["base_url"]).netloc: sel["detail_price"]
        for sel in selectors.values()
        if sel.get("base_url") and sel.get("detail_price")
    }
    orchestrator = ScanOrchestrator(
        fetcher=SelectorCatalogFetcher(browser, selectors=selectors),
        detail_fetcher=HttpDetailFetcher(browser, price_selectors=price_selectors),
        store=store,
        notifier=notifier,
        scheduler=VerificationScheduler(),
    )
    return RunCoordinator(orchestrator, resources=[browser, store, notifier])


def _print_reports(reports: list[PassReport]) -> None:
    """Render a Rich table summarising each pass."""
    table = Table(
        title="Monitor Pass Summary",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Group", style="magenta")
    table.add_column("Pass")
    table.add_column("Fetched", justify="right")
    table.add_column("Checked", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Drops", justify="right", style="green")
    table.add_column("Restocks", justify="right", style="green")
    table.add_column("Status")

    for r in reports:
        changes = r.changes
        if r.skipped:
            status = "[yellow]skipped[/yellow]"
        elif r.failed:
            status = "[red]not saved[/red]"
        else:
            status = "[green]saved[/green]"
        table.add_row(
            r.source_group,
            r.kind,
            str(r.fetched),
            str(r.checked),
            str(len(changes.added)) if changes else "-",
            str(len(changes.price_dropped)) if changes else "-",
            str(len(changes.restocked)) if changes else "-",
            status,
        )

    Console().print(table)


async def run_monitor(backend: str | None = None) -> int:
    """Run both timers until SIGINT / SIGTERM."""
    coordinator = build_coordinator(backend)
    coordinator.install_signal_handlers()
    _err.print("[bold]listing_watch running[/bold] [dim](Ctrl+C to stop)[/dim]")
    await coordinator.run_forever()
    return 0


async def run_once(kind: str, backend: str | None = None) -> int:
    """Run a single full scan or stock check and print a summary."""
    coordinator = build_coordinator(backend)
    task_kind = (
        TaskKind.FULL_SCAN if kind == "full" else TaskKind.FAST_STOCK_CHECK
    )
    _err.print(f"[bold]Running one {task_kind.value}...[/bold]")
    try:
        await coordinator.trigger(task_kind)
    finally:
        await coordinator.shutdown()

    reports = coordinator.history
    for r in reports:
        for error_msg in r.errors:
            _err.print(f"[red]{r.source_group}: {error_msg}[/red]")
    if reports:
        _print_reports(reports)
    return 1 if any(r.failed for r in reports) else 0
