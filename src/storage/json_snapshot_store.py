# src/storage/json_snapshot_store.py

"""Flat-file snapshot store, one JSON document per source group."""

import json
import logging
import os
import re
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, cast

from src.config.settings import Settings
from src.models.listing import Snapshot
from src.models.result import Err, ErrorKind, Ok, Result
from src.storage.snapshot_store import (
    SnapshotStore,
    listing_from_dict,
    listing_to_dict,
)

logger = logging.getLogger("listing_watch.storage")

_UNSAFE_CHARS_RE = re.compile(r"[^a-z0-9_.-]+")


class JsonSnapshotStore(SnapshotStore):
    """Stores each group's snapshot in ``<dir>/<group>.json``."""

    def __init__(self, snapshot_dir: Path | None = None) -> None:
        self.snapshot_dir: Path = snapshot_dir or Settings.SNAPSHOT_DIR
        self.snapshot_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(
            "JsonSnapshotStore initialised, snapshot_dir=%s",
            self.snapshot_dir,
        )

    def path_for(self, source_group: str) -> Path:
        """File holding ``source_group``'s snapshot."""
        safe = _UNSAFE_CHARS_RE.sub("_", source_group.lower()).strip("_")
        return self.snapshot_dir / f"{safe or 'default'}.json"

    def load(self, source_group: str) -> Snapshot:
        """Read a snapshot; missing or corrupt files yield an empty one.

        Accepts both the current document layout and a bare list of
        listings as written by earlier versions of the monitor.
        """
        path = self.path_for(source_group)
        if not path.exists():
            logger.info("No snapshot yet for %s", source_group)
            return Snapshot(source_group=source_group)

        try:
            with open(path, encoding="utf-8") as f:
                data: Any = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning(
                "Failed to read snapshot %s: %s",
                path.name,
                exc,
            )
            return Snapshot(source_group=source_group)

        taken_at = None
        if isinstance(data, dict):
            doc = cast(dict[str, Any], data)
            rows = doc.get("listings", [])
            try:
                taken_at = datetime.fromisoformat(str(doc.get("taken_at")))
            except ValueError:
                taken_at = None
        else:
            rows = data
        if not isinstance(rows, list):
            logger.warning("Snapshot %s has no listing array", path.name)
            return Snapshot(source_group=source_group)

        entries = [r for r in cast(list[object], rows) if isinstance(r, dict)]
        listings = [
            listing_from_dict(cast(dict[str, Any], row), source_group)
            for row in entries
        ]
        return Snapshot.from_listings(source_group, listings, taken_at=taken_at)

    def persist(self, snapshot: Snapshot) -> Result[int]:
        """Write via a temp file and ``os.replace`` so readers never see half a file."""
        path = self.path_for(snapshot.source_group)
        taken_at = snapshot.taken_at or datetime.now()
        document = {
            "source_group": snapshot.source_group,
            "taken_at": taken_at.isoformat(),
            "listings": [listing_to_dict(l) for l in snapshot],
        }
        tmp_name = ""
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.snapshot_dir,
                prefix=f".{path.stem}_",
                suffix=".tmp",
                delete=False,
            ) as f:
                tmp_name = f.name
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except OSError as exc:
            logger.error(
                "Failed to persist snapshot %s: %s",
                snapshot.source_group,
                exc,
                exc_info=True,
            )
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            return Err(ErrorKind.STORAGE, str(exc))

        logger.info(
            "Saved %d listings for %s to %s",
            len(snapshot),
            snapshot.source_group,
            path,
        )
        return Ok(len(snapshot))
