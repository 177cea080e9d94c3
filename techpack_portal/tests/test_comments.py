"""Tests for bilingual comment threads and viewer roles."""
from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from techpack_portal.techpack_lib.comments import PRIMARY_FIELD, SECONDARY_FIELD, CommentPayload, CommentThread
from techpack_portal.techpack_lib.errors import RequestFailure, ValidationError
from techpack_portal.techpack_lib.models import Comment, MediaFile, Ticket
from techpack_portal.techpack_lib.roles import PortalUser, is_internal_role, is_supplier_role, normalize_role
from techpack_portal.techpack_lib.tickets import TicketRegistry
from techpack_portal.techpack_lib.translation import NullTranslator
from techpack_portal.tests.conftest import RecordingTicketApi

INTERNAL = PortalUser(email="bate@example.com", role="BATE", name="Bate")
SUPPLIER = PortalUser(email="supplier@example.com", role="Lieferant")


def _thread(user: PortalUser, translator=None, api=None) -> CommentThread:
    api = api or RecordingTicketApi([Ticket(id="T1", order_id="O1", title="Color?")])
    registry = TicketRegistry(api)
    registry.merge(api.tickets[0])
    return CommentThread(registry, user, translator)


def test_normalize_role_strips_diacritics():
    assert normalize_role(" händler ") == "HANDLER"
    assert is_internal_role("Administrator")
    assert is_supplier_role("lieferant")
    assert not is_internal_role("supplier")


def test_render_text_prefers_role_language():
    comment = Comment(id="c1", author="x", message_primary="Hallo", message_secondary="Merhaba")
    assert _thread(INTERNAL).render_text(comment) == "Hallo"
    assert _thread(SUPPLIER).render_text(comment) == "Merhaba"


def test_render_text_falls_back_to_legacy_then_other_language():
    legacy = Comment(id="c1", author="x", message="Alt")
    only_primary = Comment(id="c2", author="x", message_primary="Nur Deutsch")
    assert _thread(SUPPLIER).render_text(legacy) == "Alt"
    assert _thread(SUPPLIER).render_text(only_primary) == "Nur Deutsch"
    assert _thread(SUPPLIER).render_text(Comment(id="c3", author="x")) == ""


def test_internal_render_shows_both_variants():
    comment = Comment(id="c1", author="x", author_name="Xaver", message_primary="Hallo", message_secondary="Merhaba")
    rendered = _thread(INTERNAL).render(comment)
    assert rendered.variants == {"de": "Hallo", "tr": "Merhaba"}
    assert rendered.author == "Xaver"
    assert _thread(SUPPLIER).render(comment).variants == {}


def test_reply_fields_by_role():
    assert _thread(INTERNAL).reply_fields() == (PRIMARY_FIELD, SECONDARY_FIELD)
    assert _thread(SUPPLIER).reply_fields() == (SECONDARY_FIELD,)


@pytest.mark.asyncio
async def test_auto_translate_blank_on_failure():
    thread = _thread(INTERNAL, NullTranslator())
    assert await thread.auto_translate("Hallo", "de", "tr") == ""


@pytest.mark.asyncio
async def test_complete_translation_fills_missing_variant():
    translator = AsyncMock()
    translator.translate = AsyncMock(return_value="Merhaba")
    thread = _thread(INTERNAL, translator)
    completed = await thread.complete_translation(CommentPayload(message_primary="Hallo"))
    assert completed.message_secondary == "Merhaba"
    translator.translate.assert_awaited_once_with("Hallo", "de", "tr")


@pytest.mark.asyncio
async def test_submit_with_failing_translation_still_sends():
    translator = AsyncMock()
    translator.translate = AsyncMock(side_effect=RequestFailure("quota exceeded"))
    api = RecordingTicketApi([Ticket(id="T1", order_id="O1", title="Color?")])
    thread = _thread(SUPPLIER, translator, api)
    comment = await thread.submit("T1", CommentPayload(message_secondary="Siyah"), translate=True)
    assert comment.message_secondary == "Siyah"
    assert comment.message_primary is None
    _, ticket_id, sent, _ = api.calls[-1]
    assert ticket_id == "T1"
    assert sent.author == "supplier@example.com"
    assert [c.id for c in thread.comments("T1")] == [comment.id]


@pytest.mark.asyncio
async def test_empty_submission_is_rejected_before_any_request():
    translator = AsyncMock()
    api = RecordingTicketApi([Ticket(id="T1", order_id="O1", title="Color?")])
    thread = _thread(INTERNAL, translator, api)
    with pytest.raises(ValidationError):
        await thread.submit("T1", CommentPayload(message_primary="", message_secondary="  "), translate=True)
    assert api.calls == []
    translator.translate.assert_not_called()


@pytest.mark.asyncio
async def test_attachment_only_comment_is_accepted():
    api = RecordingTicketApi([Ticket(id="T1", order_id="O1", title="Color?")])
    thread = _thread(SUPPLIER, api=api)
    payload = CommentPayload(attachments=[MediaFile("swatch.jpg", b"jpg", "image/jpeg")])
    await thread.submit("T1", payload)
    assert api.calls[-1][0] == "add_comment"


@pytest.mark.asyncio
async def test_delete_comment_through_thread():
    api = RecordingTicketApi([Ticket(id="T1", order_id="O1", title="Color?", comments=[Comment(id="c1", author="x")])])
    thread = _thread(INTERNAL, api=api)
    await thread.delete("T1", "c1")
    assert thread.comments("T1") == []


@pytest.mark.asyncio
async def test_unexpected_translator_error_does_not_block_submit():
    translator = AsyncMock()
    translator.translate = AsyncMock(side_effect=ValueError("malformed response"))
    api = RecordingTicketApi([Ticket(id="T1", order_id="O1", title="Color?")])
    thread = _thread(INTERNAL, translator, api)
    comment = await thread.submit("T1", CommentPayload(message_primary="Schwarz"), translate=True)
    assert comment.message_primary == "Schwarz"
    assert api.calls[-1][0] == "add_comment"
