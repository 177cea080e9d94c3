"""Reference portal backend: the final authority on specifications and tickets.

Every operation runs under one re-entrant lock, so the resolve check and the
ticket changes that could invalidate it never interleave.
"""
from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, List, Mapping, Optional, Union

from .config import PortalConfig
from .errors import GatingViolation, RecordNotFound, ValidationError
from .gating import open_ticket_count
from .hashing import stored_filename
from .identity import TicketContext, find_ticket
from .models import (
    Annotation,
    Attachment,
    Comment,
    MediaFile,
    MediaStatus,
    PersistedMedia,
    Specification,
    Ticket,
    TicketPriority,
    TicketScope,
    TicketStatus,
    clean_text,
    is_placeholder_id,
    optional_text,
    utc_now_iso,
)
from .roles import is_internal_role
from .stores import SpecRecordStore, TicketRecordStore
from .views import first_free_view, get_view, normalize_view_key

UPLOADS_URL_PREFIX = "/uploads/"
TICKET_PREFIXES = {"order": "TIC-BE-", "techpack": "TIC-TE-"}
TICKET_START_SEEDS = {"order": 21345, "techpack": 76412}


def generate_ticket_id(existing: Iterable[Ticket], kind: str, year: Optional[int] = None) -> str:
    """Next ``TIC-BE-<year>NNNNN`` (order) or ``TIC-TE-<year>NNNNN`` (position/view) id."""
    if kind not in TICKET_PREFIXES:
        raise ValueError(f"Unknown ticket kind: {kind}")
    prefix = f"{TICKET_PREFIXES[kind]}{year or datetime.now(timezone.utc).year}"
    numbers = []
    for ticket in existing:
        if ticket.id.startswith(prefix):
            suffix = ticket.id[len(prefix):]
            if suffix.isdigit():
                numbers.append(int(suffix))
    next_number = max(numbers) + 1 if numbers else TICKET_START_SEEDS[kind]
    return f"{prefix}{next_number % 100000:05d}"


def _segment(value: Any, name: str) -> str:
    text = clean_text(value)
    if not text or "/" in text or "\\" in text or text in {".", ".."}:
        raise ValidationError(f"Invalid {name}: {value!r}")
    return text


class PortalBackend:
    def __init__(self, data_dir: Path, uploads_dir: Optional[Path] = None, logger: Optional[logging.Logger] = None) -> None:
        self.data_dir = Path(data_dir)
        self.uploads_dir = Path(uploads_dir) if uploads_dir else self.data_dir / "uploads"
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.specs = SpecRecordStore(self.data_dir / "specs.json")
        self.tickets = TicketRecordStore(self.data_dir / "tickets.json")
        self.logger = logger or logging.getLogger(__name__)
        self.lock = threading.RLock()

    @classmethod
    def from_config(cls, config: PortalConfig) -> "PortalBackend":
        return cls(config.data_dir, config.uploads_dir)

    # ------------------------------------------------------------------ files

    def _store_file(self, relative_dir: Path, file: MediaFile, owner_id: str) -> str:
        target_dir = self.uploads_dir / relative_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        name = stored_filename(file.filename, file.content, owner_id)
        (target_dir / name).write_bytes(file.content)
        return f"{UPLOADS_URL_PREFIX}{(relative_dir / name).as_posix()}"

    def _remove_file(self, url: Optional[str]) -> None:
        if not url or not url.startswith(UPLOADS_URL_PREFIX):
            return
        root = self.uploads_dir.resolve()
        path = (root / url[len(UPLOADS_URL_PREFIX):]).resolve()
        if root not in path.parents:
            self.logger.warning("Refusing to remove %s outside uploads", path)
            return
        path.unlink(missing_ok=True)

    @staticmethod
    def _spec_dir(order_id: str, position_id: str) -> Path:
        return Path("orders") / order_id / "positions" / position_id

    # ------------------------------------------------------------------ specifications

    def get_specification(self, order_id: str, position_id: str) -> Specification:
        """Stored specification, or an empty unsaved one for an unknown position."""
        order_id = _segment(order_id, "order_id")
        position_id = _segment(position_id, "position_id")
        with self.lock:
            found = self.specs.get(order_id, position_id)
            return found if found is not None else Specification(order_id=order_id, position_id=position_id)

    def _touch(self, specification: Specification, actor: str) -> Specification:
        specification.updated_at = utc_now_iso()
        specification.last_actor = clean_text(actor) or "system"
        self.specs.save(specification)
        return specification

    def _media(self, specification: Specification, media_id: str) -> PersistedMedia:
        if is_placeholder_id(media_id):
            raise ValidationError("Placeholder media cannot be modified; upload media for this view first")
        media = specification.media_by_id(clean_text(media_id))
        if media is None:
            raise RecordNotFound(f"Media {media_id!r} not found")
        return media

    def upload_media(
        self,
        order_id: str,
        position_id: str,
        view_key: Optional[str],
        file: MediaFile,
        actor: str = "",
    ) -> Specification:
        with self.lock:
            specification = self.get_specification(order_id, position_id)
            key = normalize_view_key(view_key) or first_free_view(specification)
            existing = specification.media.get(key)
            if existing is not None:
                return self.replace_media(order_id, position_id, existing.id, file, actor)
            media_id = f"file-{uuid.uuid4()}"
            url = self._store_file(self._spec_dir(specification.order_id, specification.position_id), file, media_id)
            specification.media[key] = PersistedMedia(
                id=media_id,
                view_key=key,
                status=MediaStatus.OPEN,
                url=url,
                label=get_view(key).label,
                filename=file.filename,
            )
            self.logger.info("Uploaded %s to %s/%s view %s", file.filename, order_id, position_id, key)
            return self._touch(specification, actor)

    def replace_media(
        self,
        order_id: str,
        position_id: str,
        media_id: str,
        file: MediaFile,
        actor: str = "",
    ) -> Specification:
        with self.lock:
            specification = self.get_specification(order_id, position_id)
            media = self._media(specification, media_id)
            old_url = media.url
            media.url = self._store_file(self._spec_dir(specification.order_id, specification.position_id), file, media.id)
            media.filename = file.filename
            media.status = MediaStatus.OPEN
            if old_url != media.url:
                self._remove_file(old_url)
            self.logger.info("Replaced media %s of %s/%s", media.id, order_id, position_id)
            return self._touch(specification, actor)

    def delete_media(self, order_id: str, position_id: str, media_id: str, actor: str = "") -> Specification:
        with self.lock:
            specification = self.get_specification(order_id, position_id)
            media = self._media(specification, media_id)
            del specification.media[media.view_key]
            specification.annotations = [item for item in specification.annotations if item.media_id != media.id]
            self._remove_file(media.url)
            self.logger.info("Deleted media %s of %s/%s", media.id, order_id, position_id)
            return self._touch(specification, actor)

    def set_media_status(
        self,
        order_id: str,
        position_id: str,
        media_id: str,
        status: Union[MediaStatus, str],
        actor: str = "",
    ) -> Specification:
        target = MediaStatus.parse(status)
        with self.lock:
            specification = self.get_specification(order_id, position_id)
            media = self._media(specification, media_id)
            if target is MediaStatus.RESOLVED:
                count = open_ticket_count(self.tickets.all(), specification.order_id, specification.position_id, media.view_key)
                if count:
                    self.logger.warning(
                        "Refusing to resolve %s/%s view %s: %d open tickets",
                        order_id,
                        position_id,
                        media.view_key,
                        count,
                    )
                    raise GatingViolation()
            media.status = target
            return self._touch(specification, actor)

    def add_annotation(
        self,
        order_id: str,
        position_id: str,
        media_id: str,
        x: Any,
        y: Any,
        note: str,
        author: str = "",
    ) -> Annotation:
        coordinates = []
        for axis, value in (("x", x), ("y", y)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"{axis} must be a number")
            if not 0.0 <= float(value) <= 1.0:
                raise ValidationError(f"{axis} must be within [0, 1]")
            coordinates.append(float(value))
        clean_note = clean_text(note)
        if not clean_note:
            raise ValidationError("note is required")
        with self.lock:
            specification = self.get_specification(order_id, position_id)
            media = self._media(specification, media_id)
            annotation = Annotation(
                id=f"ann-{uuid.uuid4()}",
                media_id=media.id,
                x=coordinates[0],
                y=coordinates[1],
                note=clean_note,
                author=clean_text(author),
                created_at=utc_now_iso(),
            )
            specification.annotations.append(annotation)
            self._touch(specification, author)
            return annotation

    def delete_annotation(self, order_id: str, position_id: str, annotation_id: str, actor: str = "") -> None:
        with self.lock:
            specification = self.get_specification(order_id, position_id)
            remaining = [item for item in specification.annotations if item.id != annotation_id]
            if len(remaining) == len(specification.annotations):
                raise RecordNotFound(f"Annotation {annotation_id!r} not found")
            specification.annotations = remaining
            self._touch(specification, actor)

    def _reopen_view(self, ticket: Ticket) -> None:
        """A newly open view-level question puts that view's resolved media back to OPEN."""
        if not ticket.is_open or not ticket.position_id or not ticket.view_key:
            return
        specification = self.specs.get(ticket.order_id, ticket.position_id)
        if specification is None:
            return
        media = specification.media.get(ticket.view_key)
        if media is None or media.status is not MediaStatus.RESOLVED:
            return
        media.status = MediaStatus.OPEN
        self.logger.info("Reopened %s/%s view %s for ticket %s", ticket.order_id, ticket.position_id, ticket.view_key, ticket.id)
        self._touch(specification, "system")

    # ------------------------------------------------------------------ tickets

    def list_tickets(self, order_id: Optional[str] = None) -> List[Ticket]:
        with self.lock:
            tickets = self.tickets.all()
        if order_id:
            return [ticket for ticket in tickets if ticket.order_id == order_id]
        return tickets

    def _find_ticket(self, tickets: List[Ticket], ticket_id: str, context: Union[TicketContext, Mapping[str, Any], None]) -> Ticket:
        ticket = find_ticket(tickets, ticket_id, context)
        if ticket is None:
            raise RecordNotFound(f"Ticket {ticket_id!r} not found")
        return ticket

    def create_ticket(
        self,
        scope: TicketScope,
        title: str,
        priority: Union[TicketPriority, str, None] = TicketPriority.MEDIUM,
    ) -> Ticket:
        clean_title = clean_text(title)
        if not clean_title:
            raise ValidationError("title is required")
        view_key = None
        if scope.view_key:
            view_key = get_view(scope.view_key).key
        with self.lock:
            tickets = self.tickets.all()
            ticket = Ticket(
                id=generate_ticket_id(tickets, "techpack" if scope.position_id else "order"),
                order_id=clean_text(scope.order_id),
                position_id=optional_text(scope.position_id),
                view_key=view_key,
                title=clean_title,
                status=TicketStatus.OPEN,
                priority=TicketPriority.parse(priority),
                created_at=utc_now_iso(),
            )
            tickets.append(ticket)
            self.tickets.save_all(tickets)
            self._reopen_view(ticket)
            self.logger.info("Created ticket %s for %s", ticket.id, scope.to_dict())
            return ticket

    def set_ticket_status(
        self,
        ticket_id: str,
        status: Union[TicketStatus, str],
        context: Union[TicketContext, Mapping[str, Any], None] = None,
    ) -> Ticket:
        target = TicketStatus.parse(status)
        with self.lock:
            tickets = self.tickets.all()
            ticket = self._find_ticket(tickets, ticket_id, context)
            previous = ticket.status
            ticket.status = target
            self.tickets.save_all(tickets)
            if previous is not target:
                self.logger.info("Ticket %s %s -> %s", ticket.id, previous.value, target.value)
                self._reopen_view(ticket)
            return ticket

    def delete_ticket(self, ticket_id: str, context: Union[TicketContext, Mapping[str, Any], None] = None) -> None:
        with self.lock:
            tickets = self.tickets.all()
            ticket = self._find_ticket(tickets, ticket_id, context)
            tickets.remove(ticket)
            self.tickets.save_all(tickets)
            for comment in ticket.comments:
                for attachment in comment.attachments:
                    self._remove_file(attachment.url)
            self.logger.info("Deleted ticket %s with %d comments", ticket.id, len(ticket.comments))

    def add_comment(
        self,
        ticket_id: str,
        body: Mapping[str, Any],
        context: Union[TicketContext, Mapping[str, Any], None] = None,
    ) -> Comment:
        """Append a comment built from a wire payload.

        A legacy single ``message`` is filed under the author's reading
        language when no language variant was sent.
        """
        primary = clean_text(body.get("message_primary"))
        secondary = clean_text(body.get("message_secondary"))
        legacy = clean_text(body.get("message") or body.get("comment"))
        if not primary and not secondary and legacy:
            if is_internal_role(body.get("author_role")):
                primary = legacy
            else:
                secondary = legacy
        files = [MediaFile.from_payload(raw) for raw in body.get("attachments") or []]
        if not (primary or secondary or files):
            raise ValidationError("A comment needs a message or an attachment")
        with self.lock:
            tickets = self.tickets.all()
            ticket = self._find_ticket(tickets, ticket_id, context)
            attachments = [
                Attachment(
                    filename=file.filename,
                    url=self._store_file(Path("tickets") / _segment(ticket.id, "ticket id"), file, uuid.uuid4().hex[:12]),
                )
                for file in files
            ]
            author = clean_text(body.get("author"))
            comment = Comment(
                id=f"tc-{uuid.uuid4()}",
                author=author,
                author_name=optional_text(body.get("author_name")) or author or None,
                message_primary=primary or None,
                message_secondary=secondary or None,
                message=primary or secondary or legacy or None,
                attachments=attachments,
                created_at=utc_now_iso(),
            )
            ticket.comments.append(comment)
            self.tickets.save_all(tickets)
            return comment

    def delete_comment(
        self,
        ticket_id: str,
        comment_id: str,
        context: Union[TicketContext, Mapping[str, Any], None] = None,
    ) -> None:
        with self.lock:
            tickets = self.tickets.all()
            ticket = self._find_ticket(tickets, ticket_id, context)
            removed = next((comment for comment in ticket.comments if comment.id == comment_id), None)
            if removed is None:
                raise RecordNotFound(f"Comment {comment_id!r} not found")
            ticket.comments.remove(removed)
            self.tickets.save_all(tickets)
            for attachment in removed.attachments:
                self._remove_file(attachment.url)
