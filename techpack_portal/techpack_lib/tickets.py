"""In-memory ticket registry with server-authoritative mutations.

All tickets live in one store keyed by :class:`TicketIdentityKey`. The
global list and the order-scoped lists the UI shows are projections of that
store, so a merged server record is visible in every list at once and never
has to be copied between independently refreshed caches.

No mutation touches the store before the server has answered; a failed
request leaves everything as it was.
"""
from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from .errors import RequestFailure, ValidationError
from .identity import TicketContext, TicketIdentityKey, find_ticket
from .models import Comment, Ticket, TicketPriority, TicketScope, TicketStatus, clean_text

if TYPE_CHECKING:  # pragma: no cover
    from .api import TicketApi
    from .comments import CommentPayload

ContextLike = Union[TicketContext, Mapping[str, Any], None]


@dataclass
class OpenTicketSummary:
    """Open questions of one order, split the way overview lists show them."""

    order_id: str
    order_level: List[Ticket] = field(default_factory=list)
    by_position: Dict[str, List[Ticket]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.order_level) + sum(len(items) for items in self.by_position.values())


class TicketRegistry:
    def __init__(self, api: "TicketApi", logger: Optional[logging.Logger] = None) -> None:
        self.api = api
        self.logger = logger or logging.getLogger(__name__)
        self._records: Dict[TicketIdentityKey, Ticket] = {}

    # ------------------------------------------------------------------ read side

    def __len__(self) -> int:
        return len(self._records)

    def _iter(self, order_id: Optional[str] = None) -> Iterator[Ticket]:
        for ticket in self._records.values():
            if order_id is None or ticket.order_id == order_id:
                yield ticket

    def tickets(self, order_id: Optional[str] = None) -> List[Ticket]:
        """Global list, or the order-scoped list when ``order_id`` is given."""
        return [deepcopy(ticket) for ticket in self._iter(order_id)]

    def open_tickets(self, order_id: Optional[str] = None) -> List[Ticket]:
        return [deepcopy(ticket) for ticket in self._iter(order_id) if ticket.is_open]

    def open_summary(self, order_id: str) -> OpenTicketSummary:
        summary = OpenTicketSummary(order_id=order_id)
        for ticket in self._iter(order_id):
            if not ticket.is_open:
                continue
            if ticket.position_id is None:
                summary.order_level.append(deepcopy(ticket))
            else:
                summary.by_position.setdefault(ticket.position_id, []).append(deepcopy(ticket))
        return summary

    def _find(self, ticket_id: str, context: ContextLike) -> Optional[Ticket]:
        return find_ticket(self._records.values(), ticket_id, context)

    def resolve(self, ticket_id: str, context: ContextLike = None) -> Optional[Ticket]:
        """Ticket with ``ticket_id`` agreeing with every field of ``context``, or None."""
        found = self._find(ticket_id, context)
        return deepcopy(found) if found is not None else None

    # ------------------------------------------------------------------ merging

    def merge(self, ticket: Ticket) -> Ticket:
        """Store the authoritative ``ticket``. Merging the same record again changes nothing."""
        key = TicketIdentityKey.from_ticket(ticket)
        self._records[key] = deepcopy(ticket)
        return deepcopy(ticket)

    def replace(self, tickets: Iterable[Ticket], order_id: Optional[str] = None) -> None:
        """Make ``tickets`` the full content of a scope (one order, or everything).

        Records of the scope missing from ``tickets`` are dropped.
        """
        kept: Dict[TicketIdentityKey, Ticket] = {}
        if order_id is not None:
            kept = {key: ticket for key, ticket in self._records.items() if ticket.order_id != order_id}
        for ticket in tickets:
            if order_id is not None and ticket.order_id != order_id:
                self.logger.debug("Ignoring ticket %s outside order %s", ticket.id, order_id)
                continue
            kept[TicketIdentityKey.from_ticket(ticket)] = deepcopy(ticket)
        self._records = kept

    async def load_all(self) -> List[Ticket]:
        fetched = await self.api.list_tickets()
        self.replace(fetched)
        self.logger.debug("Loaded %d tickets", len(fetched))
        return self.tickets()

    async def load_order(self, order_id: str) -> List[Ticket]:
        fetched = await self.api.list_tickets_for_order(order_id)
        self.replace(fetched, order_id=order_id)
        self.logger.debug("Loaded %d tickets for order %s", len(fetched), order_id)
        return self.tickets(order_id)

    # ------------------------------------------------------------------ mutations

    def _scope_hint(self, ticket_id: str, context: ContextLike) -> tuple[Optional[TicketIdentityKey], TicketContext]:
        local = self._find(ticket_id, context)
        if local is None:
            return None, TicketContext.coerce(context)
        return TicketIdentityKey.from_ticket(local), TicketContext.for_ticket(local)

    def _rejected(self, action: str, exc: ValidationError) -> ValidationError:
        self.logger.info("Rejected %s: %s", action, exc)
        return exc

    async def create(
        self,
        scope: TicketScope,
        title: str,
        priority: Union[TicketPriority, str, None] = TicketPriority.MEDIUM,
    ) -> Ticket:
        clean_title = clean_text(title)
        if not clean_title:
            raise self._rejected("ticket creation", ValidationError("A ticket needs a title"))
        try:
            parsed_priority = TicketPriority.parse(priority)
        except ValidationError as exc:
            raise self._rejected("ticket creation", exc)
        try:
            created = await self.api.create_ticket(scope, clean_title, parsed_priority)
        except RequestFailure as exc:
            self.logger.warning("Creating ticket %r failed: %s", clean_title, exc)
            raise
        self.logger.info("Created ticket %s (%s scope)", created.id, created.scope.kind)
        return self.merge(created)

    async def set_status(
        self,
        ticket_id: str,
        next_status: Union[TicketStatus, str],
        context: ContextLike = None,
    ) -> Ticket:
        """Ask the server to move a ticket to ``next_status`` and merge its answer."""
        try:
            status = TicketStatus.parse(next_status)
        except ValidationError as exc:
            raise self._rejected("status change", exc)
        key, hint = self._scope_hint(ticket_id, context)
        try:
            updated = await self.api.set_ticket_status(ticket_id, status, hint)
        except RequestFailure as exc:
            self.logger.warning("Setting ticket %s to %s failed: %s", ticket_id, status.value, exc)
            raise
        new_key = TicketIdentityKey.from_ticket(updated)
        if key is not None and key != new_key:
            self._records.pop(key, None)
        return self.merge(updated)

    async def delete(self, ticket_id: str, context: ContextLike = None) -> None:
        key, hint = self._scope_hint(ticket_id, context)
        try:
            await self.api.delete_ticket(ticket_id, hint)
        except RequestFailure as exc:
            self.logger.warning("Deleting ticket %s failed: %s", ticket_id, exc)
            raise
        if key is not None:
            # comments go with the record
            self._records.pop(key, None)
        self.logger.info("Deleted ticket %s", ticket_id)

    async def add_comment(
        self,
        ticket_id: str,
        payload: "CommentPayload",
        context: ContextLike = None,
    ) -> Comment:
        try:
            payload.validate()
        except ValidationError as exc:
            raise self._rejected("comment", exc)
        key, hint = self._scope_hint(ticket_id, context)
        try:
            comment = await self.api.add_comment(ticket_id, payload, hint)
        except RequestFailure as exc:
            self.logger.warning("Adding comment to ticket %s failed: %s", ticket_id, exc)
            raise
        record = self._records.get(key) if key is not None else None
        if record is not None and all(existing.id != comment.id for existing in record.comments):
            record.comments.append(deepcopy(comment))
        return deepcopy(comment)

    async def delete_comment(self, ticket_id: str, comment_id: str, context: ContextLike = None) -> None:
        key, hint = self._scope_hint(ticket_id, context)
        try:
            await self.api.delete_comment(ticket_id, comment_id, hint)
        except RequestFailure as exc:
            self.logger.warning("Deleting comment %s of ticket %s failed: %s", comment_id, ticket_id, exc)
            raise
        record = self._records.get(key) if key is not None else None
        if record is not None:
            record.comments = [comment for comment in record.comments if comment.id != comment_id]
