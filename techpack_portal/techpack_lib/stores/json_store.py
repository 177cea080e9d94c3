"""Base class for JSON-backed record stores with thread-safe read/write operations."""
from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class BaseJSONStore:
    """Base class for JSON-backed stores with thread-safe operations.

    Provides:
    - Atomic writes through a temporary file
    - Version and timestamp bookkeeping
    - Tolerance for missing or corrupt files (defaults are kept)

    Subclasses should:
    - Define VERSION as a class variable
    - Override _init_data() to provide the initial structure
    - Override _load_records() to validate the loaded payload
    """

    VERSION = 1

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lock = threading.Lock()
        self._data: Dict[str, Any] = self._init_data()
        self._load()

    def _init_data(self) -> Dict[str, Any]:
        return {
            "version": self.VERSION,
            "updated_at": int(time.time()),
        }

    def _read_payload(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable store %s: %s", self.path, exc)
            return None
        if not isinstance(payload, dict):
            logger.warning("Ignoring store %s: expected an object", self.path)
            return None
        return payload

    def _load(self) -> None:
        payload = self._read_payload()
        if payload is None:
            return
        self._load_records(payload)

        version = payload.get("version")
        if isinstance(version, int) and version > 0:
            self._data["version"] = version

        updated = payload.get("updated_at")
        if isinstance(updated, (int, float)):
            self._data["updated_at"] = int(updated)

    def _load_records(self, payload: Dict[str, Any]) -> None:
        """Copy validated records from ``payload`` into ``self._data``."""
        return None

    def _touch_locked(self) -> None:
        """Update version and timestamp. Must be called with lock held."""
        self._data["version"] = self.VERSION
        self._data["updated_at"] = int(time.time())

    def _write_locked(self) -> None:
        """Write data to disk atomically. Must be called with lock held."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        temp_path.write_text(
            json.dumps(self._data, ensure_ascii=False, indent=2),
            encoding="utf-8"
        )
        temp_path.replace(self.path)
