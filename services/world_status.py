"""
World status provider.

Travel classifications (standard, preferred, congested) are read from a
YAML file mapping data centers to worlds:

    Aether:
      Gilgamesh: congested
      Siren: preferred
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Optional

import yaml

from engine.market_models import WorldClassification, WorldStatus

log = logging.getLogger(__name__)


class WorldStatusService:
    """Looks up world classifications by name (case-insensitive)."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._lock = threading.RLock()
        self._statuses: Dict[str, WorldStatus] = {}
        self._loaded = False

    @classmethod
    def from_config(cls, config: Dict) -> 'WorldStatusService':
        return cls(config.get('world_status', {}).get('path'))

    def load(self) -> int:
        """Read the status file; a missing file leaves every world standard."""
        with self._lock:
            self._loaded = True
            if self.path is None or not self.path.exists():
                log.info("No world status file at %s; treating all worlds as standard", self.path)
                return 0
            try:
                with self.path.open('r', encoding='utf-8') as f:
                    raw = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                log.error("Failed to read world status from %s: %s", self.path, e)
                return 0

            count = 0
            for data_center, worlds in raw.items():
                if not isinstance(worlds, dict):
                    continue
                for world_name, label in worlds.items():
                    self.set_status(str(world_name), WorldClassification.parse(str(label)), str(data_center))
                    count += 1
            log.info("Loaded status for %d worlds", count)
            return count

    def set_status(self, world_name: str, classification: WorldClassification, data_center: str = "") -> None:
        with self._lock:
            self._statuses[world_name.lower()] = WorldStatus(world_name, classification, data_center)

    def get_status(self, world_name: str) -> Optional[WorldStatus]:
        with self._lock:
            if not self._loaded:
                self.load()
            return self._statuses.get(world_name.lower())

    def is_congested(self, world_name: str) -> bool:
        status = self.get_status(world_name)
        return status is not None and status.is_congested

    def worlds_in(self, data_center: str) -> Dict[str, WorldClassification]:
        with self._lock:
            if not self._loaded:
                self.load()
            wanted = data_center.lower()
            return {s.world_name: s.classification for s in self._statuses.values()
                    if s.data_center.lower() == wanted}
