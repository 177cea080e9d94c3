"""Store for specification records (media per view plus annotations)."""
from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from ..models import Specification
from .json_store import BaseJSONStore

logger = logging.getLogger(__name__)


def spec_key(order_id: str, position_id: str) -> str:
    return f"{order_id}::{position_id}"


class SpecRecordStore(BaseJSONStore):
    """Persist one specification per (order, position) in ``specs.json``.

    Records are kept in their dict form and parsed on every read, so callers
    always get an independent copy.
    """

    VERSION = 1

    def _init_data(self) -> Dict[str, Any]:
        return {
            "version": self.VERSION,
            "updated_at": int(time.time()),
            "specs": {},
        }

    def _load_records(self, payload: Dict[str, Any]) -> None:
        specs = payload.get("specs")
        if not isinstance(specs, dict):
            return
        valid: Dict[str, Any] = {}
        for key, raw in specs.items():
            try:
                spec = Specification.from_dict(raw if isinstance(raw, dict) else {})
            except ValidationError:
                logger.warning("Skipping malformed specification %s in %s", key, self.path)
                continue
            valid[spec_key(*spec.key)] = spec.to_dict()
        self._data["specs"] = valid

    def get(self, order_id: str, position_id: str) -> Optional[Specification]:
        raw = self._data.get("specs", {}).get(spec_key(order_id, position_id))
        if not isinstance(raw, dict):
            return None
        return Specification.from_dict(raw)

    def save(self, specification: Specification) -> None:
        with self.lock:
            specs = self._data.setdefault("specs", {})
            specs[spec_key(*specification.key)] = specification.to_dict()
            self._touch_locked()
            self._write_locked()

    def all(self) -> List[Specification]:
        return [Specification.from_dict(raw) for raw in self._data.get("specs", {}).values()]
