"""Store classes for persistent portal data."""
from .json_store import BaseJSONStore
from .spec_store import SpecRecordStore
from .ticket_store import TicketRecordStore

__all__ = [
    'BaseJSONStore',
    'SpecRecordStore',
    'TicketRecordStore',
]
