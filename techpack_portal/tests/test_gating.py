"""Tests for the resolve gating rules."""
from __future__ import annotations

import pytest

from techpack_portal.techpack_lib.errors import ValidationError
from techpack_portal.techpack_lib.gating import (
    can_resolve,
    ensure_transition_allowed,
    open_ticket_count,
    open_view_keys,
    ticket_matches_view,
)
from techpack_portal.techpack_lib.models import MediaStatus, Ticket, TicketStatus


def _ticket(ticket_id, position_id="P1", view_key=None, status=TicketStatus.OPEN, order_id="O1") -> Ticket:
    return Ticket(
        id=ticket_id,
        order_id=order_id,
        position_id=position_id,
        view_key=view_key,
        title=ticket_id,
        status=status,
    )


def test_view_ticket_only_matches_its_view():
    ticket = _ticket("t1", view_key="front")
    assert ticket_matches_view(ticket, "O1", "P1", "front")
    assert not ticket_matches_view(ticket, "O1", "P1", "sole")
    assert not ticket_matches_view(ticket, "O1", "P1", None)
    assert not ticket_matches_view(ticket, "O1", "P2", "front")


def test_position_ticket_does_not_count_against_a_view():
    ticket = _ticket("t1")
    assert not ticket_matches_view(ticket, "O1", "P1", "front")
    assert ticket_matches_view(ticket, "O1", "P1", None)


def test_order_ticket_requires_absent_position():
    ticket = _ticket("t1", position_id=None)
    assert ticket_matches_view(ticket, "O1", None, None)
    assert not ticket_matches_view(ticket, "O1", "P1", None)


def test_open_ticket_count_ignores_closed():
    tickets = [
        _ticket("t1", view_key="front"),
        _ticket("t2", view_key="front", status=TicketStatus.CLOSED),
        _ticket("t3", view_key="front"),
        _ticket("t4", view_key="sole"),
    ]
    assert open_ticket_count(tickets, "O1", "P1", "front") == 2
    assert not can_resolve(tickets, "O1", "P1", "front")
    assert can_resolve(tickets, "O1", "P1", "rear")


def test_scenarios_block_then_allow_after_close():
    t1 = _ticket("t1", view_key="front")
    with pytest.raises(ValidationError):
        ensure_transition_allowed([t1], "O1", "P1", "front", MediaStatus.RESOLVED)
    t1.status = TicketStatus.CLOSED
    assert can_resolve([t1], "O1", "P1", "front")
    ensure_transition_allowed([t1], "O1", "P1", "front", MediaStatus.RESOLVED)


def test_reopening_is_never_blocked():
    tickets = [_ticket("t1", view_key="front")]
    ensure_transition_allowed(tickets, "O1", "P1", "front", MediaStatus.OPEN)


def test_open_view_keys():
    tickets = [
        _ticket("t1", view_key="front"),
        _ticket("t2", view_key="Sole"),
        _ticket("t3", view_key="rear", status=TicketStatus.CLOSED),
        _ticket("t4"),
        _ticket("t5", view_key="top", position_id="P2"),
    ]
    assert open_view_keys(tickets, "O1", "P1") == {"front", "sole"}
