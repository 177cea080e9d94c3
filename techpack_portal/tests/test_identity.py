"""Tests for ticket identity resolution."""
from __future__ import annotations

from techpack_portal.techpack_lib.identity import (
    UNSET,
    TicketContext,
    TicketIdentityKey,
    find_ticket,
    matches,
    normalize_timestamp,
    ticket_key,
)
from techpack_portal.techpack_lib.models import Ticket


def _ticket(ticket_id: str, position_id=None, order_id="O1", created_at="2024-05-01T10:00:00Z", title="Sole color?") -> Ticket:
    return Ticket(id=ticket_id, order_id=order_id, position_id=position_id, title=title, created_at=created_at)


def test_normalize_timestamp_equates_notations():
    assert normalize_timestamp("2024-05-01T10:00:00Z") == normalize_timestamp("2024-05-01T12:00:00+02:00")
    assert normalize_timestamp("") is None
    assert normalize_timestamp("not a date") == "not a date"


def test_ticket_key_segments():
    ticket = _ticket("T1", title="Lace")
    key = TicketIdentityKey.from_ticket(ticket)
    assert key.position_id is None
    assert key.ticket_key == "T1::O1::::2024-05-01T10:00:00+00:00::Lace"
    assert ticket_key(ticket) == key.ticket_key


def test_context_from_mapping_accepts_camel_case():
    context = TicketContext.from_mapping({"orderId": "O1", "positionId": "P1"})
    assert context.order_id == "O1"
    assert context.position_id == "P1"
    assert context.created_at is UNSET
    assert not context.is_empty


def test_empty_position_means_explicitly_absent():
    context = TicketContext.from_mapping({"position_id": ""})
    assert context.position_id is None
    assert context.order_id is UNSET
    assert context.to_params() == {"position_id": ""}


def test_empty_order_id_is_ignored():
    assert TicketContext.from_mapping({"order_id": "  "}).is_empty


def test_position_context_distinguishes_order_level_ticket():
    """An order-level ticket never matches a position-scoped lookup."""
    order_level = _ticket("TIC-7")
    assert not matches(order_level, "TIC-7", TicketContext(position_id="P1"))
    assert matches(order_level, "TIC-7", TicketContext(position_id=None))


def test_find_ticket_without_context_matches_by_id():
    tickets = [_ticket("A"), _ticket("B", position_id="P1")]
    assert find_ticket(tickets, "B").position_id == "P1"
    assert find_ticket(tickets, "C") is None
    assert find_ticket(tickets, "") is None


def test_find_ticket_never_falls_back_when_context_given():
    tickets = [_ticket("T2")]
    assert find_ticket(tickets, "T2", {"positionId": "P1"}) is None


def test_find_ticket_picks_the_matching_epoch():
    old = _ticket("T5", order_id="O1", created_at="2023-01-01T00:00:00Z")
    new = _ticket("T5", order_id="O2", created_at="2024-01-01T00:00:00Z")
    found = find_ticket([old, new], "T5", TicketContext(order_id="O2"))
    assert found is new
    found = find_ticket([old, new], "T5", TicketContext(created_at="2023-01-01T01:00:00+01:00"))
    assert found is old


def test_find_ticket_by_ticket_key():
    first = _ticket("T9", title="Heel")
    second = _ticket("T9", title="Toe")
    context = TicketContext(ticket_key=ticket_key(second))
    assert find_ticket([first, second], "T9", context) is second


def test_for_ticket_round_trips_through_params():
    ticket = _ticket("T3", position_id="P2")
    params = TicketContext.for_ticket(ticket).to_params()
    assert params["order_id"] == "O1"
    assert params["position_id"] == "P2"
    assert matches(ticket, "T3", TicketContext.from_mapping(params))
