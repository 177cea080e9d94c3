"""Shared fixtures for portal tests."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest

from techpack_portal.techpack_lib.api import LocalPortalApi
from techpack_portal.techpack_lib.backend import PortalBackend
from techpack_portal.techpack_lib.errors import RequestFailure
from techpack_portal.techpack_lib.models import Comment, MediaFile, Ticket, TicketStatus
from techpack_portal.techpack_lib.specification import SpecificationStore
from techpack_portal.techpack_lib.tickets import TicketRegistry
from techpack_portal.techpack_lib.web_server import dispatch

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class RecordingTicketApi:
    """Ticket collaborator that records calls and serves canned answers."""

    def __init__(self, tickets: Optional[List[Ticket]] = None) -> None:
        self.tickets = list(tickets or [])
        self.calls: List[tuple] = []
        self.fail: Optional[RequestFailure] = None
        self.next_comment: Optional[Comment] = None

    def _record(self, *call: Any) -> None:
        self.calls.append(call)
        if self.fail is not None:
            raise self.fail

    async def list_tickets(self) -> List[Ticket]:
        self._record("list_tickets")
        return list(self.tickets)

    async def list_tickets_for_order(self, order_id: str) -> List[Ticket]:
        self._record("list_tickets_for_order", order_id)
        return [ticket for ticket in self.tickets if ticket.order_id == order_id]

    async def create_ticket(self, scope, title, priority) -> Ticket:
        self._record("create_ticket", scope, title, priority)
        ticket = Ticket(
            id=f"TIC-{len(self.tickets) + 1}",
            order_id=scope.order_id,
            position_id=scope.position_id,
            view_key=scope.view_key,
            title=title,
            priority=priority,
            created_at="2024-05-01T10:00:00+00:00",
        )
        self.tickets.append(ticket)
        return ticket

    async def set_ticket_status(self, ticket_id, status, scope_hint) -> Ticket:
        self._record("set_ticket_status", ticket_id, status, scope_hint)
        for ticket in self.tickets:
            if ticket.id == ticket_id and (scope_hint.is_empty or ticket.order_id == scope_hint.order_id):
                ticket.status = TicketStatus(status.value)
                return ticket
        raise RequestFailure("not found", 404)

    async def delete_ticket(self, ticket_id, scope_hint) -> None:
        self._record("delete_ticket", ticket_id, scope_hint)

    async def add_comment(self, ticket_id, payload, scope_hint) -> Comment:
        self._record("add_comment", ticket_id, payload, scope_hint)
        if self.next_comment is not None:
            return self.next_comment
        return Comment(
            id=f"tc-{len(self.calls)}",
            author=payload.author,
            message_primary=payload.message_primary or None,
            message_secondary=payload.message_secondary or None,
        )

    async def delete_comment(self, ticket_id, comment_id, scope_hint) -> None:
        self._record("delete_comment", ticket_id, comment_id, scope_hint)


@pytest.fixture
def backend(tmp_path: Path) -> PortalBackend:
    return PortalBackend(tmp_path / "data")


@pytest.fixture
def local_api(backend: PortalBackend) -> LocalPortalApi:
    return LocalPortalApi(backend, actor="bate@example.com")


@pytest.fixture
def registry(local_api: LocalPortalApi) -> TicketRegistry:
    return TicketRegistry(local_api)


@pytest.fixture
def spec_store(local_api: LocalPortalApi, registry: TicketRegistry) -> SpecificationStore:
    return SpecificationStore(local_api, registry)


@pytest.fixture
def png_file() -> MediaFile:
    return MediaFile(filename="front.png", content=PNG_BYTES, content_type="image/png")


def backend_transport(backend: PortalBackend) -> httpx.MockTransport:
    """Route httpx requests through the server's dispatch without sockets."""

    def handler(request: httpx.Request) -> httpx.Response:
        body: Dict[str, Any] = json.loads(request.content) if request.content else {}
        query = dict(request.url.params)
        raw_path = request.url.raw_path.decode("ascii").split("?", 1)[0]
        status, payload = dispatch(backend, request.method, raw_path, query, body)
        if payload is None:
            return httpx.Response(status)
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


@pytest.fixture
def transport(backend: PortalBackend) -> httpx.MockTransport:
    return backend_transport(backend)
