# src/storage/sqlite_snapshot_store.py

"""SQLite-backed snapshot store."""

import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings
from src.models.listing import Listing, Snapshot, StockStatus
from src.models.result import Err, ErrorKind, Ok, Result
from src.storage.snapshot_store import SnapshotStore

logger = logging.getLogger("listing_watch.storage")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS listings (
    source_group TEXT    NOT NULL,
    id           TEXT    NOT NULL,
    title        TEXT    NOT NULL,
    url          TEXT    NOT NULL,
    price_raw    TEXT    NOT NULL DEFAULT '',
    in_stock     TEXT    NOT NULL DEFAULT 'unknown',
    priority     INTEGER NOT NULL DEFAULT 0,
    last_seen_at TEXT,
    PRIMARY KEY (source_group, id)
);

CREATE TABLE IF NOT EXISTS snapshots (
    source_group TEXT PRIMARY KEY,
    taken_at     TEXT NOT NULL,
    size         INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_listings_priority
    ON listings(source_group, priority);
"""


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring unreadable timestamp %r", value)
        return None


class SqliteSnapshotStore(SnapshotStore):
    """Keeps every group's current snapshot in one SQLite database.

    The connection is shared by worker threads, so every read and
    every write transaction runs under one lock.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.SNAPSHOT_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._lock = threading.Lock()
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        logger.debug(
            "SqliteSnapshotStore opened at %s", path,
        )

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def load(self, source_group: str) -> Snapshot:
        """Read a group's listings; database errors yield an empty snapshot."""
        try:
            with self._lock:
                rows = self._conn.execute(
                    "SELECT id, title, url, price_raw, in_stock, "
                    "       priority, last_seen_at "
                    "FROM listings WHERE source_group = ? "
                    "ORDER BY id",
                    (source_group,),
                ).fetchall()
                meta = self._conn.execute(
                    "SELECT taken_at FROM snapshots WHERE source_group = ?",
                    (source_group,),
                ).fetchone()
        except sqlite3.Error as exc:
            logger.warning(
                "Failed to load snapshot %s: %s", source_group, exc,
            )
            return Snapshot(source_group=source_group)

        listings: list[Listing] = []
        for r in rows:
            try:
                status = StockStatus(r[4])
            except ValueError:
                status = StockStatus.UNKNOWN
            listings.append(Listing(
                id=r[0],
                title=r[1],
                url=r[2],
                source_group=source_group,
                price_raw=r[3],
                in_stock=status,
                priority=bool(r[5]),
                last_seen_at=_parse_time(r[6]),
            ))
        taken_at = _parse_time(meta[0]) if meta else None
        return Snapshot.from_listings(source_group, listings, taken_at=taken_at)

    def persist(self, snapshot: Snapshot) -> Result[int]:
        """Replace the group's rows inside a single transaction."""
        taken_at = (snapshot.taken_at or datetime.now()).isoformat()
        rows = [
            (
                snapshot.source_group,
                l.id,
                l.title,
                l.url,
                l.price_raw,
                l.in_stock.value,
                int(l.priority),
                l.last_seen_at.isoformat() if l.last_seen_at else None,
            )
            for l in snapshot
        ]
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    "DELETE FROM listings WHERE source_group = ?",
                    (snapshot.source_group,),
                )
                self._conn.executemany(
                    "INSERT INTO listings (source_group, id, title, url, "
                    "price_raw, in_stock, priority, last_seen_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    rows,
                )
                self._conn.execute(
                    "INSERT INTO snapshots (source_group, taken_at, size) "
                    "VALUES (?, ?, ?) "
                    "ON CONFLICT(source_group) DO UPDATE SET "
                    "taken_at=excluded.taken_at, size=excluded.size",
                    (snapshot.source_group, taken_at, len(rows)),
                )
        except sqlite3.Error as exc:
            logger.error(
                "Failed to persist snapshot %s: %s",
                snapshot.source_group,
                exc,
                exc_info=True,
            )
            return Err(ErrorKind.STORAGE, str(exc))

        logger.info(
            "Persisted %d listings for %s",
            len(rows),
            snapshot.source_group,
        )
        return Ok(len(rows))
