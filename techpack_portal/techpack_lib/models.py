"""Entity model for specifications, media, annotations, tickets and comments.

Every entity round-trips through ``to_dict`` / ``from_dict``; the dict form is
both the JSON persisted by the reference server and the HTTP wire format.
"""
from __future__ import annotations

import base64
import binascii
import logging
import math
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from .errors import ValidationError

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "placeholder-"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def optional_text(value: Any) -> Optional[str]:
    text = clean_text(value)
    return text or None


def is_placeholder_id(media_id: Any) -> bool:
    return isinstance(media_id, str) and media_id.startswith(PLACEHOLDER_PREFIX)


class MediaStatus(Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"

    @classmethod
    def parse(cls, value: Any) -> "MediaStatus":
        """Parse user or wire input; the legacy ``OK`` means resolved."""
        if isinstance(value, cls):
            return value
        text = clean_text(value).upper()
        if text == "OK":
            return cls.RESOLVED
        try:
            return cls(text)
        except ValueError as exc:
            raise ValidationError(f"Unknown media status: {value!r}") from exc


class TicketStatus(Enum):
    OPEN = "OPEN"
    CLOSED = "CLOSED"

    @classmethod
    def parse(cls, value: Any) -> "TicketStatus":
        if isinstance(value, cls):
            return value
        text = clean_text(value).upper()
        try:
            return cls(text)
        except ValueError as exc:
            raise ValidationError(f"Unknown ticket status: {value!r}") from exc

    @classmethod
    def from_stored(cls, value: Any) -> "TicketStatus":
        # anything that is not explicitly closed counts as open
        return cls.CLOSED if clean_text(value).upper() == cls.CLOSED.value else cls.OPEN


class TicketPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "TicketPriority":
        if isinstance(value, cls):
            return value
        text = clean_text(value).lower()
        if not text:
            return cls.MEDIUM
        text = PRIORITY_ALIASES.get(text, text)
        try:
            return cls(text)
        except ValueError as exc:
            raise ValidationError(f"Unknown ticket priority: {value!r}") from exc


PRIORITY_ALIASES = {"niedrig": "low", "mittel": "medium", "hoch": "high"}


@dataclass
class PersistedMedia:
    """An uploaded media asset for one view of a specification."""

    id: str
    view_key: str
    status: MediaStatus = MediaStatus.OPEN
    url: str = ""
    label: str = ""
    filename: Optional[str] = None

    @property
    def persisted(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "view_key": self.view_key,
            "status": self.status.value,
            "url": self.url,
            "label": self.label,
            "filename": self.filename,
            "persisted": True,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Optional["PersistedMedia"]:
        """Parse a stored media entry; synthesized placeholder entries are skipped."""
        if not isinstance(raw, Mapping):
            return None
        media_id = clean_text(raw.get("id"))
        view_key = clean_text(raw.get("view_key")).lower()
        if not media_id or not view_key:
            return None
        if is_placeholder_id(media_id) or raw.get("is_placeholder") or raw.get("persisted") is False:
            return None
        try:
            status = MediaStatus.parse(raw.get("status") or MediaStatus.OPEN.value)
        except ValidationError:
            status = MediaStatus.OPEN
        return cls(
            id=media_id,
            view_key=view_key,
            status=status,
            url=clean_text(raw.get("url")),
            label=clean_text(raw.get("label")),
            filename=optional_text(raw.get("filename")),
        )


@dataclass(frozen=True)
class PlaceholderMedia:
    """Synthesized stand-in for a view without uploaded media. Never stored."""

    view_key: str
    position: int
    label: str = ""

    @property
    def id(self) -> str:
        return f"{PLACEHOLDER_PREFIX}{self.view_key}"

    @property
    def url(self) -> str:
        return f"/placeholders/{self.position:02d}-{self.view_key}.png"

    @property
    def status(self) -> MediaStatus:
        return MediaStatus.OPEN

    @property
    def persisted(self) -> bool:
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "view_key": self.view_key,
            "status": self.status.value,
            "url": self.url,
            "label": self.label,
            "position": self.position,
            "persisted": False,
        }


MediaAsset = Union[PersistedMedia, PlaceholderMedia]


@dataclass
class Annotation:
    id: str
    media_id: str
    x: float
    y: float
    note: str
    author: str = ""
    created_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "media_id": self.media_id,
            "x": self.x,
            "y": self.y,
            "note": self.note,
            "author": self.author,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Optional["Annotation"]:
        if not isinstance(raw, Mapping):
            return None
        annotation_id = clean_text(raw.get("id"))
        media_id = clean_text(raw.get("media_id"))
        if not annotation_id or not media_id:
            return None
        try:
            x = float(raw.get("x"))
            y = float(raw.get("y"))
        except (TypeError, ValueError):
            return None
        if math.isnan(x) or math.isnan(y):
            return None
        return cls(
            id=annotation_id,
            media_id=media_id,
            x=x,
            y=y,
            note=clean_text(raw.get("note")),
            author=clean_text(raw.get("author")),
            created_at=clean_text(raw.get("created_at") or raw.get("ts")),
        )


@dataclass
class Attachment:
    filename: str
    url: str

    def to_dict(self) -> Dict[str, Any]:
        return {"filename": self.filename, "url": self.url}

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Optional["Attachment"]:
        if not isinstance(raw, Mapping):
            return None
        url = clean_text(raw.get("url"))
        if not url:
            return None
        return cls(filename=clean_text(raw.get("filename")) or url.rsplit("/", 1)[-1], url=url)


@dataclass
class Comment:
    """One message in a ticket thread.

    ``message_primary`` holds the primary-language text and
    ``message_secondary`` the secondary-language text. ``message`` is the
    legacy single-language body some stored comments still carry.
    """

    id: str
    author: str
    message_primary: Optional[str] = None
    message_secondary: Optional[str] = None
    attachments: List[Attachment] = field(default_factory=list)
    created_at: str = ""
    author_name: Optional[str] = None
    message: Optional[str] = None

    def has_content(self) -> bool:
        return bool(self.message_primary or self.message_secondary or self.message or self.attachments)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "author": self.author,
            "author_name": self.author_name,
            "message_primary": self.message_primary,
            "message_secondary": self.message_secondary,
            "message": self.message,
            "attachments": [attachment.to_dict() for attachment in self.attachments],
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Optional["Comment"]:
        if not isinstance(raw, Mapping):
            return None
        comment_id = clean_text(raw.get("id"))
        if not comment_id:
            return None
        attachments: List[Attachment] = []
        raw_attachments = raw.get("attachments")
        if not isinstance(raw_attachments, list):
            single = raw.get("attachment")
            raw_attachments = [single] if single else []
        for entry in raw_attachments:
            attachment = Attachment.from_dict(entry)
            if attachment:
                attachments.append(attachment)
        return cls(
            id=comment_id,
            author=clean_text(raw.get("author")),
            message_primary=optional_text(raw.get("message_primary")),
            message_secondary=optional_text(raw.get("message_secondary")),
            attachments=attachments,
            created_at=clean_text(raw.get("created_at") or raw.get("ts")),
            author_name=optional_text(raw.get("author_name")),
            message=optional_text(raw.get("message")),
        )


@dataclass(frozen=True)
class TicketScope:
    """Where a ticket lives: an order, a position, or one view of a position."""

    order_id: str
    position_id: Optional[str] = None
    view_key: Optional[str] = None

    def __post_init__(self) -> None:
        if not clean_text(self.order_id):
            raise ValidationError("order_id is required")
        if self.view_key and not self.position_id:
            raise ValidationError("a view-level ticket needs a position_id")

    @property
    def kind(self) -> str:
        if self.position_id is None:
            return "order"
        if self.view_key is None:
            return "position"
        return "view"

    def to_dict(self) -> Dict[str, Any]:
        return {"order_id": self.order_id, "position_id": self.position_id, "view_key": self.view_key}


@dataclass
class Ticket:
    id: str
    order_id: str
    title: str
    position_id: Optional[str] = None
    view_key: Optional[str] = None
    status: TicketStatus = TicketStatus.OPEN
    priority: TicketPriority = TicketPriority.MEDIUM
    created_at: str = ""
    comments: List[Comment] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status is TicketStatus.OPEN

    @property
    def scope(self) -> TicketScope:
        return TicketScope(self.order_id, self.position_id, self.view_key)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "position_id": self.position_id,
            "view_key": self.view_key,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority.value,
            "created_at": self.created_at,
            "comments": [comment.to_dict() for comment in self.comments],
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Optional["Ticket"]:
        if not isinstance(raw, Mapping):
            return None
        ticket_id = clean_text(raw.get("id"))
        order_id = clean_text(raw.get("order_id"))
        if not ticket_id or not order_id:
            return None
        position_id = optional_text(raw.get("position_id"))
        view_key = optional_text(raw.get("view_key"))
        try:
            priority = TicketPriority.parse(raw.get("priority"))
        except ValidationError:
            priority = TicketPriority.MEDIUM
        comments: List[Comment] = []
        for entry in raw.get("comments") or []:
            comment = Comment.from_dict(entry)
            if comment:
                comments.append(comment)
        return cls(
            id=ticket_id,
            order_id=order_id,
            title=clean_text(raw.get("title")),
            position_id=position_id,
            view_key=view_key.lower() if (view_key and position_id) else None,
            status=TicketStatus.from_stored(raw.get("status")),
            priority=priority,
            created_at=clean_text(raw.get("created_at")),
            comments=comments,
        )


@dataclass
class Specification:
    """Review record for one order line item (order + position)."""

    order_id: str
    position_id: str
    media: Dict[str, PersistedMedia] = field(default_factory=dict)
    annotations: List[Annotation] = field(default_factory=list)
    updated_at: Optional[str] = None
    last_actor: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.order_id, self.position_id)

    def media_by_id(self, media_id: str) -> Optional[PersistedMedia]:
        for media in self.media.values():
            if media.id == media_id:
                return media
        return None

    def persisted_views(self) -> List[str]:
        return list(self.media)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "position_id": self.position_id,
            "media": [media.to_dict() for media in self.media.values()],
            "annotations": [annotation.to_dict() for annotation in self.annotations],
            "updated_at": self.updated_at,
            "last_actor": self.last_actor,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Specification":
        order_id = clean_text(raw.get("order_id"))
        position_id = clean_text(raw.get("position_id"))
        if not order_id or not position_id:
            raise ValidationError("specification needs order_id and position_id")
        media: Dict[str, PersistedMedia] = {}
        for entry in raw.get("media") or []:
            parsed = PersistedMedia.from_dict(entry)
            if not parsed:
                continue
            if parsed.view_key in media:
                logger.warning(
                    "Dropping duplicate media %s for view %s of %s/%s",
                    parsed.id,
                    parsed.view_key,
                    order_id,
                    position_id,
                )
                continue
            media[parsed.view_key] = parsed
        annotations: List[Annotation] = []
        for entry in raw.get("annotations") or []:
            annotation = Annotation.from_dict(entry)
            if annotation:
                annotations.append(annotation)
        return cls(
            order_id=order_id,
            position_id=position_id,
            media=media,
            annotations=annotations,
            updated_at=optional_text(raw.get("updated_at")),
            last_actor=optional_text(raw.get("last_actor")),
        )


@dataclass
class MediaFile:
    """File content handed to upload, replace and comment attachment calls."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: Path) -> "MediaFile":
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(filename=path.name, content=path.read_bytes(), content_type=guessed or "application/octet-stream")

    def to_payload(self) -> Dict[str, str]:
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "content_b64": base64.b64encode(self.content).decode("ascii"),
        }

    @classmethod
    def from_payload(cls, raw: Any) -> "MediaFile":
        if not isinstance(raw, Mapping):
            raise ValidationError("file payload is required")
        filename = clean_text(raw.get("filename"))
        encoded = raw.get("content_b64")
        if not filename or not isinstance(encoded, str) or not encoded:
            raise ValidationError("file payload needs filename and content")
        try:
            content = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValidationError("file content is not valid base64") from exc
        return cls(
            filename=filename,
            content=content,
            content_type=clean_text(raw.get("content_type")) or "application/octet-stream",
        )
