"""Tests for periodic ticket refresh."""
from __future__ import annotations

import asyncio
import logging

import pytest

from techpack_portal.techpack_lib.errors import RequestFailure
from techpack_portal.techpack_lib.models import Ticket
from techpack_portal.techpack_lib.refresh import PeriodicRefresher
from techpack_portal.techpack_lib.tickets import TicketRegistry
from techpack_portal.tests.conftest import RecordingTicketApi


def _api() -> RecordingTicketApi:
    return RecordingTicketApi(
        [
            Ticket(id="T1", order_id="O1", title="Heel height?"),
            Ticket(id="T2", order_id="O2", position_id="P1", title="Lining?"),
        ]
    )


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PeriodicRefresher(TicketRegistry(_api()), 0)


@pytest.mark.asyncio
async def test_refresh_once_loads_global_then_watched_orders():
    api = _api()
    registry = TicketRegistry(api)
    refresher = PeriodicRefresher(registry, 30, order_ids=["O2"])
    assert await refresher.refresh_once() is True
    assert [call[0] for call in api.calls] == ["list_tickets", "list_tickets_for_order"]
    assert len(registry) == 2


@pytest.mark.asyncio
async def test_refresh_once_reports_failures_and_keeps_state(caplog):
    api = _api()
    registry = TicketRegistry(api)
    await registry.load_all()
    api.fail = RequestFailure("offline")
    refresher = PeriodicRefresher(registry, 30, order_ids=["O1"])
    with caplog.at_level(logging.WARNING):
        assert await refresher.refresh_once() is False
    assert "Ticket refresh failed" in caplog.text
    assert "order O1" in caplog.text
    assert len(registry) == 2


@pytest.mark.asyncio
async def test_watch_and_unwatch():
    refresher = PeriodicRefresher(TicketRegistry(_api()), 30)
    refresher.watch("O1")
    refresher.watch("O1")
    assert refresher.order_ids == {"O1"}
    refresher.unwatch("O1")
    refresher.unwatch("O9")
    assert refresher.order_ids == set()


@pytest.mark.asyncio
async def test_start_and_stop():
    api = _api()
    async with PeriodicRefresher(TicketRegistry(api), 0.01) as refresher:
        assert refresher.running
        await asyncio.sleep(0.05)
    assert not refresher.running
    assert api.calls[0] == ("list_tickets",)
