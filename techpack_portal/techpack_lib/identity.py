"""Ticket identity resolution across independently fetched collections.

The same logical ticket can be held by several caches (the global list and
order-scoped lists) and ids alone are not guaranteed unique across fetches,
so lookups compare value fields instead of object identity.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timezone
from typing import Any, Dict, Iterable, Mapping, NamedTuple, Optional, TypeVar, Union

from dateutil import parser as dateparser

from .models import Ticket, clean_text

T = TypeVar("T", bound=Ticket)


class _Unset:
    """Marker for a context field that was not specified at all."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def normalize_timestamp(value: Any) -> Optional[str]:
    """Return ``value`` as ISO-8601 UTC so equal instants compare equal.

    Unparseable values are returned stripped so they still compare verbatim.
    """
    text = clean_text(value)
    if not text:
        return None
    try:
        parsed = dateparser.parse(text)
    except (ValueError, TypeError, OverflowError):
        return text
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).isoformat()


class TicketIdentityKey(NamedTuple):
    id: str
    order_id: str
    position_id: Optional[str]
    created_at: Optional[str]
    title: str

    @classmethod
    def from_ticket(cls, ticket: Ticket) -> "TicketIdentityKey":
        return cls(
            id=ticket.id,
            order_id=ticket.order_id,
            position_id=ticket.position_id or None,
            created_at=normalize_timestamp(ticket.created_at),
            title=ticket.title,
        )

    @property
    def ticket_key(self) -> str:
        return "::".join(segment or "" for segment in self)


def ticket_key(ticket: Ticket) -> str:
    return TicketIdentityKey.from_ticket(ticket).ticket_key


def _context_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = clean_text(value)
    return text or None


@dataclass(frozen=True)
class TicketContext:
    """Identity fields a lookup must agree with.

    A field left UNSET is not checked. ``position_id=None`` is a real
    constraint: it only matches order-level tickets.
    """

    order_id: Any = UNSET
    position_id: Any = UNSET
    created_at: Any = UNSET
    ticket_key: Any = UNSET

    @property
    def is_empty(self) -> bool:
        return all(value is UNSET for value in (self.order_id, self.position_id, self.created_at, self.ticket_key))

    @classmethod
    def for_ticket(cls, ticket: Ticket) -> "TicketContext":
        return cls(
            order_id=ticket.order_id,
            position_id=ticket.position_id or None,
            ticket_key=ticket_key(ticket),
        )

    @classmethod
    def from_mapping(cls, source: Mapping[str, Any]) -> "TicketContext":
        """Build a context from request fields (snake_case or camelCase).

        Empty order ids, creation dates and keys are ignored; an empty
        position id means "explicitly order-level".
        """

        def pick(*names: str) -> Any:
            for name in names:
                if name in source:
                    return source[name]
            return UNSET

        order_id = pick("order_id", "orderId")
        position_id = pick("position_id", "positionId")
        created_at = pick("created_at", "createdAt")
        key = pick("ticket_key", "ticketKey")
        return cls(
            order_id=_context_value(order_id) or UNSET if order_id is not UNSET else UNSET,
            position_id=_context_value(position_id) if position_id is not UNSET else UNSET,
            created_at=_context_value(created_at) or UNSET if created_at is not UNSET else UNSET,
            ticket_key=_context_value(key) or UNSET if key is not UNSET else UNSET,
        )

    @classmethod
    def coerce(cls, value: Union["TicketContext", Mapping[str, Any], None]) -> "TicketContext":
        if value is None:
            return cls()
        if isinstance(value, TicketContext):
            return value
        return cls.from_mapping(value)

    def to_params(self) -> Dict[str, str]:
        """Wire form; an explicitly absent position travels as an empty string."""
        params: Dict[str, str] = {}
        if self.order_id is not UNSET and self.order_id:
            params["order_id"] = str(self.order_id)
        if self.position_id is not UNSET:
            params["position_id"] = self.position_id or ""
        if self.created_at is not UNSET and self.created_at:
            params["created_at"] = str(self.created_at)
        if self.ticket_key is not UNSET and self.ticket_key:
            params["ticket_key"] = str(self.ticket_key)
        return params


def matches(ticket: Ticket, ticket_id: str, context: TicketContext) -> bool:
    if ticket.id != ticket_id:
        return False
    if context.ticket_key is not UNSET and ticket_key(ticket) != context.ticket_key:
        return False
    if context.order_id is not UNSET and ticket.order_id != context.order_id:
        return False
    if context.position_id is not UNSET and (ticket.position_id or None) != (context.position_id or None):
        return False
    if context.created_at is not UNSET:
        if normalize_timestamp(ticket.created_at) != normalize_timestamp(context.created_at):
            return False
    return True


def find_ticket(
    tickets: Iterable[T],
    ticket_id: str,
    context: Union[TicketContext, Mapping[str, Any], None] = None,
) -> Optional[T]:
    """First ticket with ``ticket_id`` agreeing with every field in ``context``.

    With an empty context this is a plain id match; a context that names a
    field never falls back to id-only matching.
    """
    if not ticket_id:
        return None
    resolved = TicketContext.coerce(context)
    for ticket in tickets:
        if matches(ticket, ticket_id, resolved):
            return ticket
    return None
