"""Tests for annotation validation and filtering."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from techpack_portal.techpack_lib.annotations import AnnotationStore, normalize_coordinate
from techpack_portal.techpack_lib.errors import RequestFailure, ValidationError
from techpack_portal.techpack_lib.models import Annotation, PersistedMedia, Specification
from techpack_portal.techpack_lib.views import placeholder_for


def _spec() -> Specification:
    spec = Specification(order_id="O1", position_id="P1")
    spec.media["front"] = PersistedMedia(id="m1", view_key="front", url="/uploads/m1.png")
    spec.media["side"] = PersistedMedia(id="m2", view_key="side", url="/uploads/m2.png")
    return spec


@pytest.mark.parametrize("value", [-0.01, 1.01, float("nan"), "abc", None])
def test_normalize_coordinate_rejects(value):
    with pytest.raises(ValidationError):
        normalize_coordinate(value, "x")


def test_normalize_coordinate_accepts_bounds():
    assert normalize_coordinate(0, "x") == 0.0
    assert normalize_coordinate("1", "y") == 1.0


@pytest.mark.asyncio
async def test_add_merges_server_record():
    api = AsyncMock()
    stored = Annotation(id="ann-1", media_id="m1", x=0.4, y=0.6, note="Logo", author="a@example.com")
    api.add_annotation.return_value = stored
    store = AnnotationStore(api)
    spec = _spec()
    result = await store.add(spec, "m1", 0.4, 0.6, " Logo ", "a@example.com")
    assert result is stored
    api.add_annotation.assert_awaited_once_with("O1", "P1", "m1", 0.4, 0.6, "Logo", "a@example.com")
    assert spec.annotations == [stored]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "media,x,y,note",
    [
        ("placeholder-sole", 0.4, 0.6, "Logo"),
        ("m-unknown", 0.4, 0.6, "Logo"),
        ("m1", 1.5, 0.6, "Logo"),
        ("m1", 0.4, float("nan"), "Logo"),
        ("m1", 0.4, 0.6, "   "),
    ],
)
async def test_invalid_annotations_send_nothing(media, x, y, note):
    api = AsyncMock()
    store = AnnotationStore(api)
    with pytest.raises(ValidationError):
        await store.add(_spec(), media, x, y, note)
    api.add_annotation.assert_not_called()


@pytest.mark.asyncio
async def test_placeholder_asset_is_rejected():
    api = AsyncMock()
    with pytest.raises(ValidationError):
        await AnnotationStore(api).add(_spec(), placeholder_for("sole"), 0.4, 0.6, "Logo")
    api.add_annotation.assert_not_called()


@pytest.mark.asyncio
async def test_remove_keeps_local_state_on_failure():
    api = AsyncMock()
    api.delete_annotation.side_effect = RequestFailure("offline")
    spec = _spec()
    spec.annotations.append(Annotation(id="ann-1", media_id="m1", x=0.1, y=0.1, note="a"))
    with pytest.raises(RequestFailure):
        await AnnotationStore(api).remove(spec, "ann-1")
    assert [a.id for a in spec.annotations] == ["ann-1"]


def test_for_media_filters_by_owner():
    spec = _spec()
    spec.annotations = [
        Annotation(id="a1", media_id="m1", x=0.1, y=0.1, note="front"),
        Annotation(id="a2", media_id="m2", x=0.2, y=0.2, note="side"),
    ]
    assert [a.id for a in AnnotationStore.for_media(spec, "m2")] == ["a2"]
    assert AnnotationStore.for_media(spec, None) == []
