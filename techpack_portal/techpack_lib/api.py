"""Collaborator interfaces the client core talks to, plus two implementations.

``HttpPortalApi`` speaks to a running portal server; ``LocalPortalApi``
calls a :class:`PortalBackend` in-process. Both surface server-side errors
the same way: ``RequestFailure`` with the HTTP status, or ``GatingViolation``
when a resolve request was refused.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional, Protocol
from urllib.parse import quote

import httpx

from .backend import PortalBackend
from .config import PortalConfig
from .errors import GatingViolation, RecordNotFound, RequestFailure, ValidationError
from .identity import TicketContext
from .models import (
    Annotation,
    Comment,
    MediaFile,
    MediaStatus,
    Specification,
    Ticket,
    TicketPriority,
    TicketScope,
    TicketStatus,
)

if TYPE_CHECKING:  # pragma: no cover
    from .comments import CommentPayload

GATING_STATUS = 409


class SpecificationApi(Protocol):
    async def get_specification(self, order_id: str, position_id: str) -> Specification: ...

    async def upload_media(self, order_id: str, position_id: str, view_key: str, file: MediaFile) -> Specification: ...

    async def replace_media(self, order_id: str, position_id: str, media_id: str, file: MediaFile) -> Specification: ...

    async def delete_media(self, order_id: str, position_id: str, media_id: str) -> Specification: ...

    async def set_media_status(
        self, order_id: str, position_id: str, media_id: str, status: MediaStatus
    ) -> Specification: ...

    async def add_annotation(
        self, order_id: str, position_id: str, media_id: str, x: float, y: float, note: str, author: str
    ) -> Annotation: ...

    async def delete_annotation(self, order_id: str, position_id: str, annotation_id: str) -> None: ...


class TicketApi(Protocol):
    async def list_tickets(self) -> List[Ticket]: ...

    async def list_tickets_for_order(self, order_id: str) -> List[Ticket]: ...

    async def create_ticket(self, scope: TicketScope, title: str, priority: TicketPriority) -> Ticket: ...

    async def set_ticket_status(self, ticket_id: str, status: TicketStatus, scope_hint: TicketContext) -> Ticket: ...

    async def delete_ticket(self, ticket_id: str, scope_hint: TicketContext) -> None: ...

    async def add_comment(self, ticket_id: str, payload: "CommentPayload", scope_hint: TicketContext) -> Comment: ...

    async def delete_comment(self, ticket_id: str, comment_id: str, scope_hint: TicketContext) -> None: ...


def _parse_ticket(raw: Any) -> Ticket:
    ticket = Ticket.from_dict(raw)
    if ticket is None:
        raise RequestFailure("Server returned a malformed ticket")
    return ticket


def _parse_specification(raw: Any) -> Specification:
    if not isinstance(raw, dict):
        raise RequestFailure("Server returned a malformed specification")
    try:
        return Specification.from_dict(raw)
    except ValidationError as exc:
        raise RequestFailure(f"Server returned a malformed specification: {exc}") from exc


class HttpPortalApi:
    """Portal client over ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: PortalConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> "HttpPortalApi":
        return cls(config.base_url, timeout=config.request_timeout, transport=transport)

    @staticmethod
    def _failure(response: httpx.Response) -> RequestFailure:
        try:
            message = response.json().get("error") or response.reason_phrase
        except (ValueError, AttributeError):
            message = response.text or response.reason_phrase
        if response.status_code == GATING_STATUS:
            return GatingViolation(message)
        return RequestFailure(message, response.status_code)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.request(method, path, **kwargs)
                response.raise_for_status()
                return response
        except httpx.HTTPStatusError as exc:
            raise self._failure(exc.response) from exc
        except httpx.HTTPError as exc:
            self.logger.debug("%s %s failed", method, path, exc_info=True)
            raise RequestFailure(f"{method} {path} failed: {exc}") from exc

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise RequestFailure(f"{method} {path} returned invalid JSON") from exc

    @staticmethod
    def _spec_path(order_id: str, position_id: str, *parts: str) -> str:
        segments = ["api", "specs", order_id, position_id, *parts]
        return "/" + "/".join(quote(segment, safe="") for segment in segments)

    async def get_specification(self, order_id: str, position_id: str) -> Specification:
        return _parse_specification(await self._json("GET", self._spec_path(order_id, position_id)))

    async def upload_media(self, order_id: str, position_id: str, view_key: str, file: MediaFile) -> Specification:
        body = {"view_key": view_key, "file": file.to_payload()}
        return _parse_specification(await self._json("POST", self._spec_path(order_id, position_id, "media"), json=body))

    async def replace_media(self, order_id: str, position_id: str, media_id: str, file: MediaFile) -> Specification:
        path = self._spec_path(order_id, position_id, "media", media_id, "replace")
        return _parse_specification(await self._json("POST", path, json={"file": file.to_payload()}))

    async def delete_media(self, order_id: str, position_id: str, media_id: str) -> Specification:
        path = self._spec_path(order_id, position_id, "media", media_id)
        return _parse_specification(await self._json("DELETE", path))

    async def set_media_status(
        self, order_id: str, position_id: str, media_id: str, status: MediaStatus
    ) -> Specification:
        path = self._spec_path(order_id, position_id, "media", media_id, "status")
        return _parse_specification(await self._json("PATCH", path, json={"status": status.value}))

    async def add_annotation(
        self, order_id: str, position_id: str, media_id: str, x: float, y: float, note: str, author: str
    ) -> Annotation:
        body = {"media_id": media_id, "x": x, "y": y, "note": note, "author": author}
        raw = await self._json("POST", self._spec_path(order_id, position_id, "annotations"), json=body)
        annotation = Annotation.from_dict(raw)
        if annotation is None:
            raise RequestFailure("Server returned a malformed annotation")
        return annotation

    async def delete_annotation(self, order_id: str, position_id: str, annotation_id: str) -> None:
        await self._request("DELETE", self._spec_path(order_id, position_id, "annotations", annotation_id))

    async def list_tickets(self) -> List[Ticket]:
        return [_parse_ticket(raw) for raw in await self._json("GET", "/api/tickets")]

    async def list_tickets_for_order(self, order_id: str) -> List[Ticket]:
        raw_list = await self._json("GET", "/api/tickets", params={"order_id": order_id})
        return [_parse_ticket(raw) for raw in raw_list]

    async def create_ticket(self, scope: TicketScope, title: str, priority: TicketPriority) -> Ticket:
        body: Dict[str, Any] = {**scope.to_dict(), "title": title, "priority": priority.value}
        return _parse_ticket(await self._json("POST", "/api/tickets", json=body))

    @staticmethod
    def _ticket_path(ticket_id: str, *parts: str) -> str:
        return "/" + "/".join(quote(segment, safe="") for segment in ("api", "tickets", ticket_id, *parts))

    async def set_ticket_status(self, ticket_id: str, status: TicketStatus, scope_hint: TicketContext) -> Ticket:
        body = {**scope_hint.to_params(), "status": status.value}
        return _parse_ticket(await self._json("PATCH", self._ticket_path(ticket_id), json=body))

    async def delete_ticket(self, ticket_id: str, scope_hint: TicketContext) -> None:
        await self._request("DELETE", self._ticket_path(ticket_id), params=scope_hint.to_params())

    async def add_comment(self, ticket_id: str, payload: "CommentPayload", scope_hint: TicketContext) -> Comment:
        body = {**scope_hint.to_params(), **payload.to_dict()}
        raw = await self._json("POST", self._ticket_path(ticket_id, "comments"), json=body)
        comment = Comment.from_dict(raw)
        if comment is None:
            raise RequestFailure("Server returned a malformed comment")
        return comment

    async def delete_comment(self, ticket_id: str, comment_id: str, scope_hint: TicketContext) -> None:
        path = self._ticket_path(ticket_id, "comments", comment_id)
        await self._request("DELETE", path, params=scope_hint.to_params())


@contextmanager
def _as_request_failures() -> Iterator[None]:
    """Report backend errors the way the HTTP server would."""
    try:
        yield
    except GatingViolation:
        raise
    except ValidationError as exc:
        raise RequestFailure(str(exc), 400) from exc
    except RecordNotFound as exc:
        raise RequestFailure(str(exc), 404) from exc


class LocalPortalApi:
    """In-process collaborator over a :class:`PortalBackend`."""

    def __init__(self, backend: PortalBackend, actor: str = "") -> None:
        self.backend = backend
        self.actor = actor

    async def get_specification(self, order_id: str, position_id: str) -> Specification:
        with _as_request_failures():
            return self.backend.get_specification(order_id, position_id)

    async def upload_media(self, order_id: str, position_id: str, view_key: str, file: MediaFile) -> Specification:
        with _as_request_failures():
            return self.backend.upload_media(order_id, position_id, view_key, file, self.actor)

    async def replace_media(self, order_id: str, position_id: str, media_id: str, file: MediaFile) -> Specification:
        with _as_request_failures():
            return self.backend.replace_media(order_id, position_id, media_id, file, self.actor)

    async def delete_media(self, order_id: str, position_id: str, media_id: str) -> Specification:
        with _as_request_failures():
            return self.backend.delete_media(order_id, position_id, media_id, self.actor)

    async def set_media_status(
        self, order_id: str, position_id: str, media_id: str, status: MediaStatus
    ) -> Specification:
        with _as_request_failures():
            return self.backend.set_media_status(order_id, position_id, media_id, status, self.actor)

    async def add_annotation(
        self, order_id: str, position_id: str, media_id: str, x: float, y: float, note: str, author: str
    ) -> Annotation:
        with _as_request_failures():
            return self.backend.add_annotation(order_id, position_id, media_id, x, y, note, author or self.actor)

    async def delete_annotation(self, order_id: str, position_id: str, annotation_id: str) -> None:
        with _as_request_failures():
            self.backend.delete_annotation(order_id, position_id, annotation_id, self.actor)

    async def list_tickets(self) -> List[Ticket]:
        with _as_request_failures():
            return self.backend.list_tickets()

    async def list_tickets_for_order(self, order_id: str) -> List[Ticket]:
        with _as_request_failures():
            return self.backend.list_tickets(order_id)

    async def create_ticket(self, scope: TicketScope, title: str, priority: TicketPriority) -> Ticket:
        with _as_request_failures():
            return self.backend.create_ticket(scope, title, priority)

    async def set_ticket_status(self, ticket_id: str, status: TicketStatus, scope_hint: TicketContext) -> Ticket:
        with _as_request_failures():
            return self.backend.set_ticket_status(ticket_id, status, scope_hint)

    async def delete_ticket(self, ticket_id: str, scope_hint: TicketContext) -> None:
        with _as_request_failures():
            self.backend.delete_ticket(ticket_id, scope_hint)

    async def add_comment(self, ticket_id: str, payload: "CommentPayload", scope_hint: TicketContext) -> Comment:
        with _as_request_failures():
            return self.backend.add_comment(ticket_id, payload.to_dict(), scope_hint)

    async def delete_comment(self, ticket_id: str, comment_id: str, scope_hint: TicketContext) -> None:
        with _as_request_failures():
            self.backend.delete_comment(ticket_id, comment_id, scope_hint)
