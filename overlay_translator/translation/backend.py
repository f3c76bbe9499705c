"""Translation backend contract and the offline echo backend.

WHY: The machine-translation engine is an external collaborator. The
dispatcher should only depend on a small async contract — a list of
(text, correlation key) requests in, a list of (key, translation)
responses out — so engines can be swapped without touching the
deduplication and caching logic.

HOW: TranslationRequest / TranslationResponse are plain dataclasses.
TranslationBackend is an ABC with one async method. EchoTranslationBackend
marks every text with a suffix instead of translating, which keeps the
whole pipeline runnable without network access. build_backend() picks an
implementation by name.

RULES:
- One request per distinct text; the correlation key is the text itself
- Backends may omit responses for texts they cannot translate
- Backend failures raise TranslationError and cover the whole call
- Response order carries no meaning; keys do
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from overlay_translator.config import TRANSLATION_BACKEND, TRANSLATION_BACKENDS


@dataclass(frozen=True)
class TranslationRequest:
    """One text to translate, tagged with its correlation key."""

    text: str
    key: str


@dataclass(frozen=True)
class TranslationResponse:
    """One translated text, tagged with the key of the request it answers."""

    key: str
    translated_text: str


class TranslationBackend(ABC):
    """Abstract machine-translation engine.

    To add a new engine:
    1. Subclass TranslationBackend
    2. Implement translate()
    3. Register it in build_backend()
    """

    @abstractmethod
    async def translate(
        self,
        requests: List[TranslationRequest],
        target_language: str,
    ) -> List[TranslationResponse]:
        """Translate a batch of requests in a single engine call.

        Args:
            requests: Texts with their correlation keys.
            target_language: Language code to translate into (e.g. "en").

        Returns:
            Responses for the texts the engine could translate.

        Raises:
            TranslationError: The engine call failed as a whole.
        """

    async def aclose(self) -> None:
        """Release engine resources. Default: nothing to release."""

    async def __aenter__(self) -> TranslationBackend:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        await self.aclose()


class EchoTranslationBackend(TranslationBackend):
    """Offline backend that appends a marker instead of translating.

    WHY: Lets the CLI, the API, and demos run the full pipeline without
    a translation service, with output that still shows which units went
    through translation.

    RULES:
    - translated_text = text + suffix (default " (TR)")
    - Every request gets a response
    """

    def __init__(self, suffix: str = " (TR)") -> None:
        self.suffix = suffix

    async def translate(
        self,
        requests: List[TranslationRequest],
        target_language: str,
    ) -> List[TranslationResponse]:
        return [
            TranslationResponse(key=r.key, translated_text=r.text + self.suffix)
            for r in requests
        ]


def build_backend(name: Optional[str] = None) -> TranslationBackend:
    """Create a backend by name ("echo" or "http").

    Raises:
        ValueError: Unknown backend name, or the HTTP backend is selected
            without TRANSLATION_BASE_URL.
    """
    name = name or TRANSLATION_BACKEND
    if name == "echo":
        return EchoTranslationBackend()
    if name == "http":
        from overlay_translator.translation.http_backend import HTTPTranslationBackend
        return HTTPTranslationBackend()
    raise ValueError(
        "Unknown translation backend '{}'. Available: {}".format(
            name, ", ".join(TRANSLATION_BACKENDS)
        )
    )
