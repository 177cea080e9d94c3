"""Spatial notes pinned to persisted specification media."""
from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Any, List, Optional, Union

from .errors import RequestFailure, ValidationError
from .models import Annotation, MediaAsset, PersistedMedia, Specification, clean_text, is_placeholder_id
from .views import require_persisted

if TYPE_CHECKING:  # pragma: no cover
    from .api import SpecificationApi


def normalize_coordinate(value: Any, axis: str) -> float:
    """Coordinates are fractions of the media's own bounding box."""
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{axis} must be a number") from exc
    if math.isnan(number) or not 0.0 <= number <= 1.0:
        raise ValidationError(f"{axis} must be within [0, 1], got {value!r}")
    return number


def _target_media(specification: Specification, target: Union[str, MediaAsset]) -> PersistedMedia:
    if not isinstance(target, str):
        return require_persisted(target, "annotate")
    if is_placeholder_id(target):
        raise ValidationError("Cannot annotate a placeholder; upload media for this view first")
    media = specification.media_by_id(target)
    if media is None:
        raise ValidationError(
            f"Media {target!r} is not persisted for {specification.order_id}/{specification.position_id}"
        )
    return media


class AnnotationStore:
    def __init__(self, api: "SpecificationApi", logger: Optional[logging.Logger] = None) -> None:
        self.api = api
        self.logger = logger or logging.getLogger(__name__)

    async def add(
        self,
        specification: Specification,
        media: Union[str, MediaAsset],
        x: Any,
        y: Any,
        note: str,
        author: str = "",
    ) -> Annotation:
        """Pin ``note`` at (x, y) on persisted ``media`` and merge the stored record."""
        try:
            target = _target_media(specification, media)
            norm_x = normalize_coordinate(x, "x")
            norm_y = normalize_coordinate(y, "y")
            clean_note = clean_text(note)
            if not clean_note:
                raise ValidationError("An annotation needs a note")
        except ValidationError as exc:
            self.logger.info("Rejected annotation: %s", exc)
            raise
        try:
            annotation = await self.api.add_annotation(
                specification.order_id,
                specification.position_id,
                target.id,
                norm_x,
                norm_y,
                clean_note,
                clean_text(author),
            )
        except RequestFailure as exc:
            self.logger.warning("Adding annotation on %s failed: %s", target.id, exc)
            raise
        specification.annotations.append(annotation)
        return annotation

    async def remove(self, specification: Specification, annotation_id: str) -> None:
        try:
            await self.api.delete_annotation(specification.order_id, specification.position_id, annotation_id)
        except RequestFailure as exc:
            self.logger.warning("Removing annotation %s failed: %s", annotation_id, exc)
            raise
        specification.annotations = [item for item in specification.annotations if item.id != annotation_id]

    @staticmethod
    def for_media(specification: Specification, media_id: Optional[str]) -> List[Annotation]:
        if not media_id:
            return []
        return [item for item in specification.annotations if item.media_id == media_id]
