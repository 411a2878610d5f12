# src/services/run_coordinator.py

"""Periodic scheduling, single-flight execution and graceful shutdown."""

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol

from src.config.settings import Settings
from src.services.scan_orchestrator import PassReport, ScanOrchestrator

logger = logging.getLogger("listing_watch.coordinator")


class TaskKind(Enum):
    """The two independently scheduled jobs."""

    FULL_SCAN = "full_scan"
    FAST_STOCK_CHECK = "fast_stock_check"


class TaskState(Enum):
    """Per-kind execution state."""

    IDLE = "idle"
    RUNNING = "running"


class Closable(Protocol):
    def close(self) -> Any: ...


class RunCoordinator:
    """Owns both timers and the resources shared by every pass.

    ``trigger`` is the only place a kind moves between ``IDLE`` and
    ``RUNNING``. The check and the transition happen without an await in
    between, so on one event loop a kind can never run twice at once.
    A trigger for a running kind is dropped, not queued.
    """

    def __init__(
        self,
        orchestrator: ScanOrchestrator,
        resources: list[Closable] | None = None,
        full_scan_interval: float | None = None,
        stock_check_interval: float | None = None,
        regular_every_n_ticks: int | None = None,
        grace_period: float | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.resources: list[Closable] = list(resources or [])
        self.full_scan_interval = (
            full_scan_interval or Settings.FULL_SCAN_INTERVAL
        )
        self.stock_check_interval = (
            stock_check_interval or Settings.STOCK_CHECK_INTERVAL
        )
        self.regular_every_n_ticks = max(
            1, regular_every_n_ticks or Settings.REGULAR_CHECK_EVERY_N_TICKS
        )
        self.grace_period = (
            grace_period
            if grace_period is not None
            else Settings.SHUTDOWN_GRACE_PERIOD
        )
        self._state: dict[TaskKind, TaskState] = {
            kind: TaskState.IDLE for kind in TaskKind
        }
        self._running: dict[TaskKind, asyncio.Task[list[PassReport]]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._accepting = True
        self._stop = asyncio.Event()
        self._stock_ticks = 0
        self._resources_released = False
        self.history: list[PassReport] = []

    # ── State ────────────────────────────────────────────

    def state(self, kind: TaskKind) -> TaskState:
        return self._state[kind]

    @property
    def accepting(self) -> bool:
        return self._accepting

    def _job_for(
        self, kind: TaskKind,
    ) -> Callable[[], Awaitable[list[PassReport]]]:
        if kind is TaskKind.FULL_SCAN:
            return self.orchestrator.full_scan_all

        include_regular = self._stock_ticks % self.regular_every_n_ticks == 0
        self._stock_ticks += 1

        async def stock_job() -> list[PassReport]:
            return await self.orchestrator.stock_check_all(include_regular)

        return stock_job

    # ── Triggering ───────────────────────────────────────

    async def trigger(self, kind: TaskKind) -> bool:
        """Run ``kind`` unless it is already running or shutdown began.

        Returns True when the run happened.
        """
        if not self._accepting:
            logger.info("Ignoring %s trigger during shutdown", kind.value)
            return False
        if self._state[kind] is TaskState.RUNNING:
            logger.debug("Skipping %s, already running", kind.value)
            return False

        self._state[kind] = TaskState.RUNNING
        job = self._job_for(kind)
        task = asyncio.ensure_future(job())
        self._running[kind] = task
        logger.info("%s started", kind.value)
        try:
            reports = await asyncio.shield(task)
        except Exception:
            logger.exception("%s failed", kind.value)
            return True
        finally:
            if task.done():
                self._finish(kind)
            else:
                task.add_done_callback(lambda _t, k=kind: self._finish(k))

        self.history.extend(reports)
        failed = [r.source_group for r in reports if r.failed]
        if failed:
            logger.warning(
                "%s finished with unsaved snapshots: %s",
                kind.value,
                ", ".join(failed),
            )
        else:
            logger.info("%s finished", kind.value)
        return True

    def _finish(self, kind: TaskKind) -> None:
        self._state[kind] = TaskState.IDLE
        self._running.pop(kind, None)

    def fire(self, kind: TaskKind) -> None:
        """Start a trigger in the background (used by the timers)."""
        task = asyncio.ensure_future(self.trigger(kind))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # ── Timers ───────────────────────────────────────────

    async def _timer(self, kind: TaskKind, interval: float) -> None:
        while not self._stop.is_set():
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                self.fire(kind)

    def request_shutdown(self) -> None:
        """Signal-handler entry point: stop timers and refuse triggers."""
        if self._stop.is_set():
            return
        logger.info("Shutdown requested")
        self._accepting = False
        self.orchestrator.scheduler.cancel()
        self._stop.set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT / SIGTERM to :meth:`request_shutdown`."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                signal.signal(
                    sig,
                    lambda *_: loop.call_soon_threadsafe(self.request_shutdown),
                )

    async def run_forever(self) -> None:
        """One full scan now, then both timers until shutdown."""
        logger.info(
            "Monitor starting: full scan every %.0fs, stock check every %.0fs",
            self.full_scan_interval,
            self.stock_check_interval,
        )
        self.fire(TaskKind.FULL_SCAN)
        timers = [
            asyncio.ensure_future(
                self._timer(TaskKind.FULL_SCAN, self.full_scan_interval)
            ),
            asyncio.ensure_future(
                self._timer(TaskKind.FAST_STOCK_CHECK, self.stock_check_interval)
            ),
        ]
        await self._stop.wait()
        await asyncio.gather(*timers, return_exceptions=True)
        await self.shutdown()

    # ── Shutdown ─────────────────────────────────────────

    async def shutdown(self, grace_period: float | None = None) -> bool:
        """Drain running tasks for up to the grace period, then release resources.

        Tasks still running afterwards are abandoned rather than
        cancelled. Returns True when everything drained in time.
        """
        self.request_shutdown()
        grace = self.grace_period if grace_period is None else grace_period
        in_flight = [t for t in self._running.values() if not t.done()]
        drained = True
        if in_flight:
            logger.info(
                "Waiting up to %.0fs for %d running task(s)",
                grace,
                len(in_flight),
            )
            _, pending = await asyncio.wait(in_flight, timeout=grace)
            if pending:
                drained = False
                logger.warning(
                    "Grace period elapsed with %s still running; abandoning",
                    ", ".join(k.value for k, t in self._running.items() if t in pending),
                )
        await self._release_resources()
        logger.info("Shutdown complete")
        return drained

    async def _release_resources(self) -> None:
        if self._resources_released:
            return
        self._resources_released = True
        for resource in self.resources:
            try:
                result = resource.close()
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.warning(
                    "Failed to release %s", type(resource).__name__, exc_info=True,
                )
