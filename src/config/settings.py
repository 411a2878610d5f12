# src/config/settings.py

"""Central configuration for the listing_watch monitor."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(RuntimeError):
    """Raised when a required collaborator cannot be configured."""


def _csv_env(name: str) -> list[str]:
    """Split a comma-separated environment variable into clean tokens."""
    raw = os.getenv(name, "")
    return [t.strip().lower() for t in raw.split(",") if t.strip()]


class Settings:
    """Central configuration for the listing_watch monitor."""

    # --- Fetching ---
    REQUEST_DELAY: float = 2.0          # Seconds between catalog pages
    REQUEST_TIMEOUT: int = 45           # Per-call timeout (detail + catalog)
    MAX_RETRIES: int = 3                # Retry count on transient failures
    MAX_PAGES: int = 10                 # Max pagination depth per group

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 300.0
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
    ]

    # --- Verification ---
    VERIFY_CONCURRENCY: int = 5
    VERIFY_MAX_ATTEMPTS: int = 2        # First try + one retry
    VERIFY_BACKOFF_RANGE: tuple[float, float] = (0.3, 0.8)
    SOLD_OUT_PHRASES: list[str] = [
        "uitverkocht",
        "tijdelijk niet leverbaar",
        "niet op voorraad",
        "niet beschikbaar",
        "sold out",
        "out of stock",
        "unavailable",
    ]
    AVAILABLE_PHRASES: list[str] = [
        "op voorraad",
        "morgen in huis",
        "direct leverbaar",
        "in stock",
        "available now",
    ]

    # --- Scheduling ---
    FULL_SCAN_INTERVAL: float = 6 * 60 * 60
    STOCK_CHECK_INTERVAL: float = 30.0
    REGULAR_CHECK_EVERY_N_TICKS: int = 20
    SHUTDOWN_GRACE_PERIOD: float = 30.0

    # --- Notifications ---
    MAX_NOTIFY: int = 0                 # 0 = unlimited per kind per pass
    NOTIFY_BATCH_SIZE: int = 10
    NOTIFY_BATCH_DELAY: float = 0.7
    WEBHOOK_NEW: str = os.getenv("WEBHOOK_NEW", "")
    WEBHOOK_PRICE: str = os.getenv("WEBHOOK_PRICE", "")
    WEBHOOK_RESTOCK: str = os.getenv("WEBHOOK_RESTOCK", "")

    # --- Priority ---
    PRIORITY_KEYWORDS: list[str] = _csv_env("PRIORITY_KEYWORDS")

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "nl-NL,nl;q=0.9,en-US;q=0.8,en;q=0.7",
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = BASE_DIR / "src" / "config" / "selectors.json"
    LOGS_DIR: Path = BASE_DIR / "logs"
    SNAPSHOT_BACKEND: str = os.getenv("SNAPSHOT_BACKEND", "json")
    SNAPSHOT_DIR: Path = Path(
        os.getenv("SNAPSHOT_DIR", str(BASE_DIR / "snapshots"))
    )
    SNAPSHOT_DB_PATH: Path = Path(
        os.getenv("SNAPSHOT_DB_PATH", str(BASE_DIR / "data" / "snapshots.db"))
    )

    # --- Source groups (never cross-merged) ---
    SOURCE_GROUPS: list[dict[str, object]] = [
        {
            "id": "bol",
            "label": "Bol.com",
            "catalog_url": (
                "https://www.bol.com/nl/nl/s/?searchtext=pokemon+kaarten"
            ),
            "page_param": "page",
            "required_keywords": ["pokemon", "pokémon"],
            "excluded_keywords": [
                "verzamelmap",
                "binder",
                "map voor",
                "sleeves",
                "toploader",
                "hoesjes",
                "portfolio",
                "deckbox",
            ],
        },
        {
            "id": "dreamland",
            "label": "Dreamland",
            "catalog_url": (
                "https://www.dreamland.be/e/nl/sv/pokemon-kaarten"
            ),
            "page_param": "page",
            "required_keywords": ["pokemon", "pokémon"],
            "excluded_keywords": [
                "verzamelmap",
                "binder",
                "sleeves",
                "toploader",
            ],
        },
    ]
