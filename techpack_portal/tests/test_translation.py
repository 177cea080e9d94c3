"""Tests for the MyMemory translation client."""
from __future__ import annotations

import httpx
import pytest

from techpack_portal.techpack_lib.errors import RequestFailure
from techpack_portal.techpack_lib.translation import MyMemoryTranslator, NullTranslator


def _translator(handler) -> MyMemoryTranslator:
    return MyMemoryTranslator("https://translate.test/get", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_translate_sends_language_pair():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen.update(request.url.params)
        return httpx.Response(200, json={"responseData": {"translatedText": " Merhaba "}})

    assert await _translator(handler).translate(" Hallo ", "de", "tr") == "Merhaba"
    assert seen == {"q": "Hallo", "langpair": "de|tr"}


@pytest.mark.asyncio
async def test_blank_text_makes_no_request():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    assert await _translator(handler).translate("   ", "de", "tr") == ""


@pytest.mark.asyncio
async def test_http_error_becomes_request_failure():
    translator = _translator(lambda request: httpx.Response(429, text="quota"))
    with pytest.raises(RequestFailure) as excinfo:
        await translator.translate("Hallo", "de", "tr")
    assert excinfo.value.status == 429


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [{"responseData": {"translatedText": ""}}, {"responseData": None}, ["unexpected"]],
)
async def test_missing_text_is_a_failure(payload):
    translator = _translator(lambda request: httpx.Response(200, json=payload))
    with pytest.raises(RequestFailure):
        await translator.translate("Hallo", "de", "tr")


@pytest.mark.asyncio
async def test_null_translator_always_fails():
    with pytest.raises(RequestFailure):
        await NullTranslator().translate("Hallo", "de", "tr")
