"""Store for tickets and their comment threads."""
from __future__ import annotations

import time
from typing import Any, Dict, Iterable, List

from ..models import Ticket
from .json_store import BaseJSONStore


class TicketRecordStore(BaseJSONStore):
    """Persist the ticket list in ``tickets.json``, preserving creation order."""

    VERSION = 1

    def _init_data(self) -> Dict[str, Any]:
        return {
            "version": self.VERSION,
            "updated_at": int(time.time()),
            "tickets": [],
        }

    def _load_records(self, payload: Dict[str, Any]) -> None:
        tickets = payload.get("tickets")
        if not isinstance(tickets, list):
            return
        parsed = (Ticket.from_dict(raw) for raw in tickets)
        self._data["tickets"] = [ticket.to_dict() for ticket in parsed if ticket is not None]

    def all(self) -> List[Ticket]:
        tickets: List[Ticket] = []
        for raw in self._data.get("tickets", []):
            ticket = Ticket.from_dict(raw)
            if ticket is not None:
                tickets.append(ticket)
        return tickets

    def save_all(self, tickets: Iterable[Ticket]) -> None:
        with self.lock:
            self._data["tickets"] = [ticket.to_dict() for ticket in tickets]
            self._touch_locked()
            self._write_locked()
