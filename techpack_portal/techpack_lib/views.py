"""View catalog and media resolution for specification views.

Every specification exposes the same eight view slots. A slot resolves to
the persisted media uploaded for it or, when nothing was uploaded yet, to a
synthesized placeholder that can be displayed but never modified.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from .errors import ValidationError
from .models import MediaAsset, PersistedMedia, PlaceholderMedia, Specification, clean_text


@dataclass(frozen=True)
class ViewSlot:
    key: str
    label: str
    position: int


VIEW_CATALOG: Tuple[ViewSlot, ...] = (
    ViewSlot("side", "Side view", 1),
    ViewSlot("front", "Front view", 2),
    ViewSlot("inner", "Inner view", 3),
    ViewSlot("rear", "Rear view", 4),
    ViewSlot("top", "Top view", 5),
    ViewSlot("bottom", "Bottom view", 6),
    ViewSlot("sole", "Sole", 7),
    ViewSlot("tongue", "Tongue", 8),
)
VIEW_KEYS = tuple(slot.key for slot in VIEW_CATALOG)
_SLOTS_BY_KEY: Dict[str, ViewSlot] = {slot.key: slot for slot in VIEW_CATALOG}


def normalize_view_key(value: object) -> Optional[str]:
    """Return the catalog key for ``value`` or None if it names no view."""
    key = clean_text(value).lower()
    return key if key in _SLOTS_BY_KEY else None


def get_view(view_key: object) -> ViewSlot:
    key = normalize_view_key(view_key)
    if key is None:
        raise ValidationError(f"Unknown view: {view_key!r}")
    return _SLOTS_BY_KEY[key]


def active_view(
    requested: Optional[str],
    previously_active: Optional[str],
    persisted_views: Iterable[str],
) -> str:
    """Pick the view to display.

    Selection logic:
        1. An explicitly requested view (deep link), if it is a catalog view
        2. The previously active view, if still a catalog view
        3. The view of the first persisted media asset
        4. The first view of the catalog

    Examples:
        >>> active_view("sole", "front", ["side"])
        'sole'
        >>> active_view(None, "front", ["side"])
        'front'
        >>> active_view("bogus", None, ["rear", "side"])
        'rear'
        >>> active_view(None, None, [])
        'side'
    """
    for candidate in (requested, previously_active):
        key = normalize_view_key(candidate)
        if key:
            return key
    for view_key in persisted_views:
        key = normalize_view_key(view_key)
        if key:
            return key
    return VIEW_CATALOG[0].key


def placeholder_for(view_key: str) -> PlaceholderMedia:
    """Same placeholder for the same view every time."""
    slot = get_view(view_key)
    return PlaceholderMedia(view_key=slot.key, position=slot.position, label=slot.label)


def resolve_asset(specification: Optional[Specification], view_key: str) -> MediaAsset:
    slot = get_view(view_key)
    if specification is not None:
        media = specification.media.get(slot.key)
        if media is not None:
            return media
    return placeholder_for(slot.key)


def require_persisted(asset: MediaAsset, action: str) -> PersistedMedia:
    """Return ``asset`` if it is real media, else refuse ``action`` on it."""
    if isinstance(asset, PersistedMedia):
        return asset
    if isinstance(asset, PlaceholderMedia):
        raise ValidationError(
            f"Cannot {action} the placeholder for view '{asset.view_key}'; upload media for this view first"
        )
    raise TypeError(f"Unknown media asset: {asset!r}")


def plan_upload(specification: Optional[Specification], view_key: str) -> Optional[str]:
    """Return the media id an upload must replace, or None for a fresh upload.

    A view holds at most one persisted asset, so uploading onto a view that
    already has media replaces it in place and keeps its id.
    """
    asset = resolve_asset(specification, view_key)
    if isinstance(asset, PersistedMedia):
        return asset.id
    if isinstance(asset, PlaceholderMedia):
        return None
    raise TypeError(f"Unknown media asset: {asset!r}")


def first_free_view(specification: Optional[Specification]) -> str:
    """First catalog view without persisted media (the first view if all are taken)."""
    taken = set(specification.media) if specification is not None else set()
    for slot in VIEW_CATALOG:
        if slot.key not in taken:
            return slot.key
    return VIEW_CATALOG[0].key
