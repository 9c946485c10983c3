from __future__ import annotations

import json
import logging
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, List, Optional

from pydantic import ValidationError

from app.schemas import AssetRecord
from models.records import TankAsset
from settings import get_settings

logger = logging.getLogger(__name__)


class AssetRegistry:
    """Tank metadata keyed by asset id: capacity and refill threshold overrides."""

    def __init__(self, persistence_path: Optional[Path] = None) -> None:
        self._assets: Dict[str, TankAsset] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def put_asset(self, asset: TankAsset) -> None:
        with self._lock:
            self._assets[asset.asset_id] = asset
            self._persist()

    def get_asset(self, asset_id: str) -> TankAsset:
        with self._lock:
            asset = self._assets.get(asset_id)
        if asset is None:
            raise KeyError(f"Asset {asset_id!r} not found.")
        return asset

    def list_assets(self) -> List[TankAsset]:
        with self._lock:
            return [self._assets[key] for key in sorted(self._assets)]

    def _persist(self) -> None:
        if not self.persistence_path:
            return
        payload = {
            asset_id: AssetRecord.model_validate(asset).model_dump(mode="json")
            for asset_id, asset in self._assets.items()
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

        for asset_id, payload in data.items():
            try:
                record = AssetRecord.model_validate({"asset_id": asset_id, **payload})
            except (ValidationError, TypeError) as exc:
                logger.warning(
                    "Skipping unreadable stored asset",
                    extra={"asset_id": asset_id, "reason": str(exc).splitlines()[0]},
                )
                continue
            self._assets[asset_id] = record.to_domain()


@lru_cache
def build_default_asset_registry(path: Optional[str] = None) -> AssetRegistry:
    settings = get_settings()
    registry_path = settings.assets_path if path is None else path
    persistence = Path(registry_path) if registry_path else None
    return AssetRegistry(persistence_path=persistence)
