# src/scrapers/base_fetcher.py

"""Collaborator interfaces for catalog and detail retrieval."""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any

from src.config.settings import Settings
from src.models.listing import Listing
from src.models.result import Err, ErrorKind, Ok, Result
from src.scrapers.session import BrowserSession


@dataclass
class DetailEvidence:
    """What a detail page says about stock (and, optionally, price)."""

    body_text: str
    price_raw: str | None = None


class Fetcher(ABC):
    """Retrieves the current catalog of one source group."""

    @abstractmethod
    async def fetch_catalog(
        self, source_group: str,
    ) -> Result[list[Listing]]:
        """Return every listing currently visible for ``source_group``."""
        ...


class DetailFetcher(ABC):
    """Loads one listing's detail page and returns its evidence.

    Subclasses provide :meth:`open_page` (a per-task resource) and
    :meth:`read_evidence`; :meth:`fetch_detail_status` scopes the page,
    applies the per-call timeout and turns exceptions into ``Err``.
    """

    timeout: float = float(Settings.REQUEST_TIMEOUT)

    @abstractmethod
    def open_page(self, url: str) -> AbstractAsyncContextManager[Any]:
        """Acquire a page handle for ``url``."""
        ...

    @abstractmethod
    async def read_evidence(
        self, page: Any, url: str,
    ) -> Result[DetailEvidence]:
        """Extract evidence from an open page."""
        ...

    async def _load(self, url: str) -> Result[DetailEvidence]:
        async with self.open_page(url) as page:
            return await self.read_evidence(page, url)

    async def fetch_detail_status(
        self, url: str,
    ) -> Result[DetailEvidence]:
        """Fetch evidence for ``url``; never raises on network errors."""
        try:
            return await asyncio.wait_for(
                self._load(url), timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return Err(ErrorKind.TIMEOUT, f"no response within {self.timeout:.0f}s")
        except Exception as exc:
            kind = (
                ErrorKind.TIMEOUT
                if "timeout" in type(exc).__name__.lower()
                else ErrorKind.NETWORK
            )
            return Err(kind, str(exc)[:200])


class BaseFetcher:
    """Resilient page retrieval shared by the HTTP fetchers.

    Tracks consecutive failures per source group, escalates the delay
    between requests when the shop pushes back, and opens a circuit
    breaker after ``CIRCUIT_BREAKER_THRESHOLD`` failed pages.
    """

    # Bot-challenge page markers (checked before keyword scan)
    _CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "cf-turnstile",
        "px-captcha",
    ]

    def __init__(self, browser: BrowserSession, name: str) -> None:
        self.browser = browser
        self.name = name
        self.logger = logging.getLogger(f"listing_watch.{name}")
        self.settings = Settings()
        self._current_delay: float = self.settings.REQUEST_DELAY
        self._consecutive_failures: dict[str, int] = {}
        self._circuit_opened_at: dict[str, float] = {}

    async def _wait(self) -> None:
        """Sleep using the current (possibly escalated) delay."""
        await asyncio.sleep(self._current_delay)

    def is_blocked_page(self, text: str) -> bool:
        """Detect challenge / CAPTCHA pages served with HTTP 200."""
        if text.lstrip().startswith(("{", "[")):
            return False
        lower = text.lower()
        for marker in self._CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "[%s] Challenge page detected (marker: '%s')",
                    self.name,
                    marker,
                )
                return True
        # Real product pages may mention "captcha" in scripts
        has_body_content = "<body" in lower and len(text) > 5000
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "[%s] CAPTCHA keyword '%s' detected",
                        self.name,
                        keyword,
                    )
                    return True
        return False

    def _check_circuit(self, key: str) -> bool:
        """Return True if the breaker for ``key`` blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker half-opens
        and lets a single probe through.
        """
        opened_at = self._circuit_opened_at.get(key)
        if opened_at is None:
            return False
        elapsed = time.time() - opened_at
        if elapsed >= self.settings.CIRCUIT_BREAKER_COOLDOWN:
            self.logger.info(
                "[%s] Circuit breaker half-open for %s after %.0fs",
                self.name,
                key,
                elapsed,
            )
            del self._circuit_opened_at[key]
            return False
        return True

    def _record_success(self, key: str) -> None:
        self._consecutive_failures[key] = 0
        self._circuit_opened_at.pop(key, None)
        self._current_delay = self.settings.REQUEST_DELAY

    def _record_failure(self, key: str) -> None:
        failures = self._consecutive_failures.get(key, 0) + 1
        self._consecutive_failures[key] = failures
        if failures >= self.settings.CIRCUIT_BREAKER_THRESHOLD:
            self._circuit_opened_at[key] = time.time()
            self.logger.error(
                "[%s] Circuit breaker opened for %s after %d "
                "consecutive failures",
                self.name,
                key,
                failures,
            )

    def _escalate_delay(self) -> None:
        """Double the current delay up to the configured max."""
        max_delay = (
            self.settings.REQUEST_DELAY
            * self.settings.MAX_DELAY_MULTIPLIER
        )
        self._current_delay = min(self._current_delay * 2, max_delay)
        self.logger.warning(
            "[%s] Rate-limited, delay escalated to %.1fs",
            self.name,
            self._current_delay,
        )

    async def _get_text(
        self, url: str, key: str, referer: str | None = None,
    ) -> Result[str]:
        """GET ``url`` with retries, adaptive delay and circuit breaker."""
        if self._check_circuit(key):
            return Err(ErrorKind.BLOCKED, f"circuit open for {key}")

        last_error: Err = Err(ErrorKind.NETWORK, "no attempt made")
        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = await self.browser.get(url, referer=referer)
            except Exception as exc:
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.name,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
                last_error = Err(ErrorKind.NETWORK, str(exc)[:200])
                await asyncio.sleep(self._current_delay * (attempt + 1))
                continue

            if resp.status_code == 200:
                text = str(resp.text)
                if self.is_blocked_page(text):
                    last_error = Err(ErrorKind.BLOCKED, "challenge page")
                    self._escalate_delay()
                    await self._wait()
                    continue
                self._record_success(key)
                return Ok(text)

            self.logger.warning(
                "[%s] HTTP %d on attempt %d",
                self.name,
                resp.status_code,
                attempt + 1,
            )
            last_error = Err(ErrorKind.NETWORK, f"HTTP {resp.status_code}")
            if resp.status_code in (429, 403):
                self._escalate_delay()
                await self._wait()

        self._record_failure(key)
        return last_error

