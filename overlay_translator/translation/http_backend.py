"""Async HTTP translation backend for LibreTranslate-compatible services.

WHY: Production deployments translate through a self-hosted or managed
translation service. LibreTranslate's batch endpoint accepts a list of
texts in one request, which matches the dispatcher's "one call per batch"
contract exactly.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. The backend is an async
context manager — enter it to open the connection pool, exit to close it
(the client is also created lazily on first use). translate() posts all
request texts as the "q" array and maps the aligned "translatedText" array
back onto the request keys.

RULES:
- POST {base_url}/translate with {"q": [...], "source", "target", "format": "text"}
- api_key is sent in the body only when configured
- Non-2xx responses raise TranslationError with the status code
- Transport errors and malformed bodies raise TranslationError without one
- Null or missing entries in translatedText are omitted (partial outcome)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from overlay_translator.config import (
    DEFAULT_SOURCE_LANGUAGE,
    load_translation_api_key,
    load_translation_base_url,
)
from overlay_translator.core.errors import TranslationError
from overlay_translator.translation.backend import (
    TranslationBackend,
    TranslationRequest,
    TranslationResponse,
)

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


class HTTPTranslationBackend(TranslationBackend):
    """Translation backend speaking the LibreTranslate /translate API.

    WHY: Provides a typed, batch-capable client for a real translation
    engine with consistent error wrapping.

    HOW: Wraps httpx.AsyncClient. base_url and api_key default to the
    values loaded from .env by config.

    RULES:
    - Use as: async with HTTPTranslationBackend() as backend: ...
    - base_url defaults to load_translation_base_url() (raises if unset)
    - source_language defaults to DEFAULT_SOURCE_LANGUAGE ("auto")
    - transport can be injected (httpx.MockTransport in tests)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        source_language: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or load_translation_base_url()).rstrip("/")
        self._api_key = api_key if api_key is not None else load_translation_api_key()
        self._source_language = source_language or DEFAULT_SOURCE_LANGUAGE
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> HTTPTranslationBackend:
        self._ensure_client()
        return self

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, creating it on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=_DEFAULT_TIMEOUT,
                transport=self._transport,
            )
        return self._client

    async def translate(
        self,
        requests: List[TranslationRequest],
        target_language: str,
    ) -> List[TranslationResponse]:
        """Translate all requests with one POST /translate call.

        Args:
            requests: Texts with their correlation keys.
            target_language: Target language code.

        Returns:
            Responses for every text the service translated.

        Raises:
            TranslationError: HTTP error status, transport failure, or an
                unparseable response body.
        """
        if not requests:
            return []

        client = self._ensure_client()
        body: Dict[str, Any] = {
            "q": [r.text for r in requests],
            "source": self._source_language,
            "target": target_language,
            "format": "text",
        }
        if self._api_key:
            body["api_key"] = self._api_key

        try:
            resp = await client.post("/translate", json=body)
        except httpx.HTTPError as exc:
            raise TranslationError("Translation request failed: {}".format(exc)) from exc

        if resp.status_code != 200:
            raise TranslationError(resp.text, status_code=resp.status_code)

        try:
            translated = resp.json()["translatedText"]
        except (ValueError, KeyError, TypeError) as exc:
            raise TranslationError("Malformed translation response: {}".format(exc)) from exc

        # A single "q" string gets a single string back
        if isinstance(translated, str):
            translated = [translated]
        if not isinstance(translated, list):
            raise TranslationError("Malformed translation response: translatedText is not a list")

        responses: List[TranslationResponse] = []
        for request, text in zip(requests, translated):
            if text is None:
                continue
            responses.append(TranslationResponse(key=request.key, translated_text=str(text)))

        if len(responses) < len(requests):
            logger.info(
                "Translation service returned %d of %d texts",
                len(responses), len(requests),
            )
        return responses
