"""Status gating: a view may only be resolved while none of its questions are open."""
from __future__ import annotations

from typing import Iterable, Optional, Set

from .errors import ValidationError
from .models import MediaStatus, Ticket


def _scope_value(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


def ticket_matches_view(
    ticket: Ticket,
    order_id: str,
    position_id: Optional[str],
    view_key: Optional[str],
) -> bool:
    """True when ``ticket`` belongs to exactly this (order, position, view) scope.

    A ticket without a view key only matches a query without one, so
    position-level questions never block a single view.
    """
    if ticket.order_id != order_id:
        return False
    if _scope_value(ticket.position_id) != _scope_value(position_id):
        return False
    ticket_view = _scope_value(ticket.view_key)
    query_view = _scope_value(view_key)
    if ticket_view is None:
        return query_view is None
    return query_view is not None and ticket_view.lower() == query_view.lower()


def open_ticket_count(
    tickets: Iterable[Ticket],
    order_id: str,
    position_id: Optional[str],
    view_key: Optional[str],
) -> int:
    return sum(
        1 for ticket in tickets if ticket.is_open and ticket_matches_view(ticket, order_id, position_id, view_key)
    )


def can_resolve(
    tickets: Iterable[Ticket],
    order_id: str,
    position_id: Optional[str],
    view_key: Optional[str],
) -> bool:
    return open_ticket_count(tickets, order_id, position_id, view_key) == 0


def ensure_transition_allowed(
    tickets: Iterable[Ticket],
    order_id: str,
    position_id: Optional[str],
    view_key: Optional[str],
    target_status: MediaStatus,
) -> None:
    """Raise ValidationError if moving to ``target_status`` is blocked.

    Reopening is never blocked.
    """
    if MediaStatus.parse(target_status) is not MediaStatus.RESOLVED:
        return
    count = open_ticket_count(tickets, order_id, position_id, view_key)
    if count:
        raise ValidationError(
            f"Open questions must be closed first ({count} open for view '{view_key}')"
        )


def open_view_keys(tickets: Iterable[Ticket], order_id: str, position_id: str) -> Set[str]:
    keys: Set[str] = set()
    for ticket in tickets:
        if not ticket.is_open or not ticket.view_key:
            continue
        if ticket.order_id == order_id and _scope_value(ticket.position_id) == _scope_value(position_id):
            keys.add(ticket.view_key.lower())
    return keys
