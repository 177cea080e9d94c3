"""Per-position specification cache: media views, annotations and status gating.

Every mutation goes to the server first and the specification it returns
replaces the cached copy. Operations aimed at a placeholder are refused
before anything is sent.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple, Union

from .annotations import AnnotationStore
from .errors import GatingViolation, RequestFailure, ValidationError
from .gating import ensure_transition_allowed, open_ticket_count
from .models import (
    Annotation,
    MediaAsset,
    MediaFile,
    MediaStatus,
    PersistedMedia,
    Specification,
    is_placeholder_id,
)
from .tickets import TicketRegistry
from .views import VIEW_CATALOG, ViewSlot, active_view, get_view, plan_upload, require_persisted, resolve_asset

if TYPE_CHECKING:  # pragma: no cover
    from .api import SpecificationApi

SpecKey = Tuple[str, str]
MediaRef = Union[str, MediaAsset]


@dataclass
class ViewRow:
    """One line of the review table for a position."""

    slot: ViewSlot
    asset: MediaAsset
    status: MediaStatus
    open_questions: int
    can_resolve: bool
    annotation_count: int


class SpecificationStore:
    def __init__(
        self,
        api: "SpecificationApi",
        registry: TicketRegistry,
        annotations: Optional[AnnotationStore] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api = api
        self.registry = registry
        self.logger = logger or logging.getLogger(__name__)
        self.annotations = annotations or AnnotationStore(api, logger=self.logger)
        self._specs: Dict[SpecKey, Specification] = {}
        self._active: Dict[SpecKey, str] = {}

    def _store(self, specification: Specification) -> Specification:
        self._specs[specification.key] = specification
        return specification

    async def load(self, order_id: str, position_id: str) -> Specification:
        specification = await self.api.get_specification(order_id, position_id)
        return self._store(specification)

    def get(self, order_id: str, position_id: str) -> Optional[Specification]:
        return self._specs.get((order_id, position_id))

    async def _ensure(self, order_id: str, position_id: str) -> Specification:
        cached = self.get(order_id, position_id)
        if cached is not None:
            return cached
        return await self.load(order_id, position_id)

    def asset(self, order_id: str, position_id: str, view_key: str) -> MediaAsset:
        return resolve_asset(self.get(order_id, position_id), view_key)

    def active_view(self, order_id: str, position_id: str, requested: Optional[str] = None) -> str:
        key = (order_id, position_id)
        specification = self.get(order_id, position_id)
        persisted = specification.persisted_views() if specification is not None else []
        chosen = active_view(requested, self._active.get(key), persisted)
        self._active[key] = chosen
        return chosen

    def _persisted(self, order_id: str, position_id: str, media: MediaRef, action: str) -> PersistedMedia:
        if not isinstance(media, str):
            return require_persisted(media, action)
        if is_placeholder_id(media):
            raise ValidationError(f"Cannot {action} a placeholder; upload media for this view first")
        specification = self.get(order_id, position_id)
        found = specification.media_by_id(media) if specification is not None else None
        if found is None:
            raise ValidationError(f"Unknown media {media!r} for {order_id}/{position_id}")
        return found

    def _media_from(self, specification: Specification, view_key: str) -> PersistedMedia:
        media = specification.media.get(view_key)
        if media is None:
            raise RequestFailure(f"Server response has no media for view '{view_key}'")
        return media

    async def upload(self, order_id: str, position_id: str, view_key: str, file: MediaFile) -> PersistedMedia:
        """Upload ``file`` for a view; a view that already has media gets it replaced."""
        slot = get_view(view_key)
        existing_id = plan_upload(self.get(order_id, position_id), slot.key)
        try:
            if existing_id is None:
                specification = await self.api.upload_media(order_id, position_id, slot.key, file)
            else:
                specification = await self.api.replace_media(order_id, position_id, existing_id, file)
        except RequestFailure as exc:
            self.logger.warning("Uploading %s to %s/%s/%s failed: %s", file.filename, order_id, position_id, slot.key, exc)
            raise
        self._store(specification)
        self._active[(order_id, position_id)] = slot.key
        return self._media_from(specification, slot.key)

    async def replace(self, order_id: str, position_id: str, media: MediaRef, file: MediaFile) -> PersistedMedia:
        try:
            target = self._persisted(order_id, position_id, media, "replace")
        except ValidationError as exc:
            self.logger.info("Rejected replace: %s", exc)
            raise
        try:
            specification = await self.api.replace_media(order_id, position_id, target.id, file)
        except RequestFailure as exc:
            self.logger.warning("Replacing media %s of %s/%s failed: %s", target.id, order_id, position_id, exc)
            raise
        self._store(specification)
        return self._media_from(specification, target.view_key)

    async def delete_media(self, order_id: str, position_id: str, media: MediaRef) -> None:
        try:
            target = self._persisted(order_id, position_id, media, "delete")
        except ValidationError as exc:
            self.logger.info("Rejected delete: %s", exc)
            raise
        try:
            specification = await self.api.delete_media(order_id, position_id, target.id)
        except RequestFailure as exc:
            self.logger.warning("Deleting media %s of %s/%s failed: %s", target.id, order_id, position_id, exc)
            raise
        specification.annotations = [item for item in specification.annotations if item.media_id != target.id]
        self._store(specification)

    async def set_media_status(
        self,
        order_id: str,
        position_id: str,
        media: MediaRef,
        status: Union[MediaStatus, str],
    ) -> PersistedMedia:
        """Move media to ``status``; resolving is gated on the view's open questions."""
        try:
            target_status = MediaStatus.parse(status)
            target = self._persisted(order_id, position_id, media, "change the status of")
            ensure_transition_allowed(
                self.registry.tickets(order_id),
                order_id,
                position_id,
                target.view_key,
                target_status,
            )
        except ValidationError as exc:
            self.logger.info("Rejected status change: %s", exc)
            raise
        try:
            specification = await self.api.set_media_status(order_id, position_id, target.id, target_status)
        except GatingViolation as exc:
            self.logger.warning("Server refused to resolve %s/%s/%s: %s", order_id, position_id, target.view_key, exc)
            await self._resync(order_id, position_id)
            raise
        except RequestFailure as exc:
            self.logger.warning("Status change of %s/%s/%s failed: %s", order_id, position_id, target.view_key, exc)
            raise
        self._store(specification)
        return self._media_from(specification, target.view_key)

    async def _resync(self, order_id: str, position_id: str) -> None:
        try:
            await self.load(order_id, position_id)
            await self.registry.load_order(order_id)
        except RequestFailure as exc:
            self.logger.warning("Re-fetch after gating violation failed: %s", exc)

    async def add_annotation(
        self,
        order_id: str,
        position_id: str,
        media: MediaRef,
        x: float,
        y: float,
        note: str,
        author: str = "",
    ) -> Annotation:
        specification = await self._ensure(order_id, position_id)
        return await self.annotations.add(specification, media, x, y, note, author)

    async def remove_annotation(self, order_id: str, position_id: str, annotation_id: str) -> None:
        specification = await self._ensure(order_id, position_id)
        await self.annotations.remove(specification, annotation_id)

    def annotations_for_view(self, order_id: str, position_id: str, view_key: str) -> List[Annotation]:
        specification = self.get(order_id, position_id)
        asset = resolve_asset(specification, view_key)
        if specification is None or not isinstance(asset, PersistedMedia):
            return []
        return AnnotationStore.for_media(specification, asset.id)

    def view_rows(self, order_id: str, position_id: str) -> List[ViewRow]:
        specification = self.get(order_id, position_id)
        tickets = self.registry.tickets(order_id)
        rows: List[ViewRow] = []
        for slot in VIEW_CATALOG:
            asset = resolve_asset(specification, slot.key)
            count = open_ticket_count(tickets, order_id, position_id, slot.key)
            annotations = (
                AnnotationStore.for_media(specification, asset.id)
                if specification is not None and isinstance(asset, PersistedMedia)
                else []
            )
            rows.append(
                ViewRow(
                    slot=slot,
                    asset=asset,
                    status=MediaStatus.OPEN if count else asset.status,
                    open_questions=count,
                    can_resolve=count == 0,
                    annotation_count=len(annotations),
                )
            )
        return rows
