from __future__ import annotations

import json
import logging
from bisect import bisect_left, bisect_right, insort
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from app.schemas import ReadingRecord
from models.records import TankReading
from services.consumption import normalize_timestamp
from settings import get_settings

logger = logging.getLogger(__name__)


def _timestamp_key(reading: TankReading) -> datetime:
    return reading.timestamp


class ReadingStore:
    """Time-ordered tank readings per asset, optionally persisted as JSON."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._readings: Dict[str, List[TankReading]] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_reading(self, reading: TankReading) -> None:
        self.put_readings([reading])

    def put_readings(self, readings: Iterable[TankReading]) -> int:
        count = 0
        with self._lock:
            for reading in readings:
                self._insert(reading)
                count += 1
            if count:
                self._persist()
        return count

    def fetch_readings(self, asset_id: str, start: datetime, end: datetime) -> List[TankReading]:
        """Return readings with ``start <= timestamp <= end`` in ascending order."""
        start = normalize_timestamp(start)
        end = normalize_timestamp(end)
        with self._lock:
            items = self._readings.get(asset_id)
            if not items:
                return []
            lower = bisect_left(items, start, key=_timestamp_key)
            upper = bisect_right(items, end, key=_timestamp_key)
            return items[lower:upper]

    def asset_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._readings)

    def _insert(self, reading: TankReading) -> None:
        stored = TankReading(
            asset_id=reading.asset_id,
            timestamp=normalize_timestamp(reading.timestamp),
            level_percent=reading.level_percent,
            level_liters=reading.level_liters,
        )
        insort(self._readings.setdefault(stored.asset_id, []), stored, key=_timestamp_key)

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            asset_id: [ReadingRecord.from_domain(item).model_dump(mode="json") for item in items]
            for asset_id, items in self._readings.items()
        }
        self.persistence_path.write_text(json.dumps(payload, indent=2, sort_keys=True))

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            raw = self.persistence_path.read_text() or "{}"
            data = json.loads(raw)
        except (OSError, json.JSONDecodeError):
            data = {}

        for asset_id, payloads in data.items():
            for payload in payloads:
                try:
                    record = ReadingRecord.model_validate({"asset_id": asset_id, **payload})
                except (ValidationError, TypeError) as exc:
                    logger.warning(
                        "Skipping unreadable stored reading",
                        extra={"asset_id": asset_id, "reason": str(exc).splitlines()[0]},
                    )
                    continue
                self._insert(record.to_domain())


@lru_cache
def build_default_reading_store(path: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    store_path = settings.readings_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReadingStore(persistence_path=persistence)
