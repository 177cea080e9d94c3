"""Bilingual comment threads on tickets."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .config import PortalConfig
from .errors import ValidationError
from .identity import TicketContext
from .models import Attachment, Comment, MediaFile, clean_text
from .roles import PortalUser
from .tickets import TicketRegistry
from .translation import Translator

PRIMARY_FIELD = "message_primary"
SECONDARY_FIELD = "message_secondary"


@dataclass
class CommentPayload:
    """What a user submits; validated before any request is sent."""

    message_primary: str = ""
    message_secondary: str = ""
    attachments: List[MediaFile] = field(default_factory=list)
    author: str = ""
    author_name: Optional[str] = None

    def has_content(self) -> bool:
        return bool(clean_text(self.message_primary) or clean_text(self.message_secondary) or self.attachments)

    def validate(self) -> None:
        if not self.has_content():
            raise ValidationError("A comment needs a message or an attachment")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "author": self.author,
            "author_name": self.author_name,
            PRIMARY_FIELD: clean_text(self.message_primary),
            SECONDARY_FIELD: clean_text(self.message_secondary),
            "attachments": [attachment.to_payload() for attachment in self.attachments],
        }


@dataclass
class RenderedComment:
    id: str
    author: str
    text: str
    variants: Dict[str, str]
    attachments: List[Attachment]
    created_at: str


class CommentThread:
    """Role-aware rendering and submission of ticket comments.

    Internal users read the primary language first and reply in both
    languages; everyone else reads and replies in the secondary language.
    """

    def __init__(
        self,
        registry: TicketRegistry,
        user: PortalUser,
        translator: Optional[Translator] = None,
        *,
        primary_language: str = "de",
        secondary_language: str = "tr",
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.registry = registry
        self.user = user
        self.translator = translator
        self.primary_language = primary_language
        self.secondary_language = secondary_language
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_config(
        cls,
        registry: TicketRegistry,
        user: PortalUser,
        translator: Optional[Translator],
        config: PortalConfig,
    ) -> "CommentThread":
        return cls(
            registry,
            user,
            translator,
            primary_language=config.primary_language,
            secondary_language=config.secondary_language,
        )

    def render_text(self, comment: Comment) -> str:
        """Single-language text for compact views, falling back across variants."""
        if self.user.reads_primary():
            order = (comment.message_primary, comment.message, comment.message_secondary)
        else:
            order = (comment.message_secondary, comment.message, comment.message_primary)
        for candidate in order:
            if candidate:
                return candidate
        return ""

    def render(self, comment: Comment) -> RenderedComment:
        variants: Dict[str, str] = {}
        if self.user.is_internal:
            if comment.message_primary:
                variants[self.primary_language] = comment.message_primary
            if comment.message_secondary:
                variants[self.secondary_language] = comment.message_secondary
        return RenderedComment(
            id=comment.id,
            author=comment.author_name or comment.author,
            text=self.render_text(comment),
            variants=variants,
            attachments=list(comment.attachments),
            created_at=comment.created_at,
        )

    def reply_fields(self) -> Tuple[str, ...]:
        if self.user.is_internal:
            return (PRIMARY_FIELD, SECONDARY_FIELD)
        return (SECONDARY_FIELD,)

    def comments(self, ticket_id: str, context: Union[TicketContext, Mapping[str, Any], None] = None) -> List[Comment]:
        ticket = self.registry.resolve(ticket_id, context)
        return ticket.comments if ticket is not None else []

    async def auto_translate(self, source_text: str, source_lang: str, target_lang: str) -> str:
        """Best-effort translation; any failure yields an empty string."""
        text = clean_text(source_text)
        if not text or self.translator is None or source_lang == target_lang:
            return ""
        try:
            return await self.translator.translate(text, source_lang, target_lang)
        except Exception as exc:
            # translation must never block a submission
            self.logger.warning("Auto-translation %s->%s failed: %s", source_lang, target_lang, exc)
            return ""

    async def complete_translation(self, payload: CommentPayload) -> CommentPayload:
        """Fill whichever language variant is missing from the other one."""
        primary = clean_text(payload.message_primary)
        secondary = clean_text(payload.message_secondary)
        if primary and not secondary:
            secondary = await self.auto_translate(primary, self.primary_language, self.secondary_language)
        elif secondary and not primary:
            primary = await self.auto_translate(secondary, self.secondary_language, self.primary_language)
        return replace(payload, message_primary=primary, message_secondary=secondary)

    async def submit(
        self,
        ticket_id: str,
        payload: CommentPayload,
        context: Union[TicketContext, Mapping[str, Any], None] = None,
        *,
        translate: bool = False,
    ) -> Comment:
        payload = replace(
            payload,
            author=payload.author or self.user.email,
            author_name=payload.author_name or self.user.display_name,
        )
        try:
            payload.validate()
        except ValidationError as exc:
            self.logger.info("Rejected comment on ticket %s: %s", ticket_id, exc)
            raise
        if translate:
            payload = await self.complete_translation(payload)
        return await self.registry.add_comment(ticket_id, payload, context)

    async def delete(
        self,
        ticket_id: str,
        comment_id: str,
        context: Union[TicketContext, Mapping[str, Any], None] = None,
    ) -> None:
        await self.registry.delete_comment(ticket_id, comment_id, context)
