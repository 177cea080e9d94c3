"""Machine translation collaborators for bilingual comments."""
from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx

from .config import DEFAULT_TRANSLATE_URL
from .errors import RequestFailure


class Translator(Protocol):
    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        """Return ``text`` translated, or raise RequestFailure."""
        ...


class MyMemoryTranslator:
    """Client for the public MyMemory translation endpoint."""

    def __init__(
        self,
        url: str = DEFAULT_TRANSLATE_URL,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def _request(self, params: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(self._url, params=params)
            response.raise_for_status()
            return response

    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        trimmed = (text or "").strip()
        if not trimmed:
            return ""
        params = {"q": trimmed, "langpair": f"{source_lang}|{target_lang}"}
        try:
            response = await self._request(params)
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise RequestFailure(f"Translation service answered {exc.response.status_code}", exc.response.status_code) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise RequestFailure(f"Translation service failed: {exc}") from exc
        block = data.get("responseData") if isinstance(data, dict) else None
        translated = block.get("translatedText") if isinstance(block, dict) else None
        if not isinstance(translated, str) or not translated.strip():
            raise RequestFailure("Translation service returned no text")
        return translated.strip()


class NullTranslator:
    """Translator for offline use; every call fails."""

    async def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        raise RequestFailure("No translation service configured")
