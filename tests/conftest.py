"""Shared test fixtures for the overlay_translator test suite.

WHY: Most test modules need the same small building blocks: fragments
with readable timings, a fresh TimelineStore, and a translation backend
that records what it was asked. Centralizing them keeps the scenarios in
each module short.

HOW: Plain helper functions (frag, unit) build IR objects; the
RecordingBackend is a real TranslationBackend subclass that answers with
a suffix, records every call, and can be told to fail or to leave texts
out. Pytest fixtures hand out fresh instances per test.

RULES:
- Fixtures never share mutable state between tests
- RecordingBackend.calls holds one list of TranslationRequest per backend call
- Times are in seconds, matching RawFragment
"""

from __future__ import annotations

from typing import Iterable, List, Optional

import pytest

from overlay_translator.core.errors import TranslationError
from overlay_translator.core.ir import DisplayUnit, RawFragment, Rect
from overlay_translator.core.timeline import TimelineStore
from overlay_translator.translation.backend import (
    TranslationBackend,
    TranslationRequest,
    TranslationResponse,
)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def frag(
    text: str,
    start: float,
    duration: float,
    confidence: float = 1.0,
    position: Optional[Rect] = None,
) -> RawFragment:
    """Build a RawFragment from positional (text, start, duration)."""
    return RawFragment(
        text=text,
        start_offset=start,
        duration=duration,
        confidence=confidence,
        position=position,
    )


def unit(text: str, start: float, **kwargs) -> DisplayUnit:
    """Build a DisplayUnit with the given text and time_start."""
    return DisplayUnit(original_text=text, time_start=start, **kwargs)


class RecordingBackend(TranslationBackend):
    """Translation backend double that records every call.

    RULES:
    - Answers each request with text + suffix
    - fail=True raises TranslationError on every call
    - Texts listed in omit are left out of the response
    - closed becomes True after aclose()
    """

    def __init__(
        self,
        suffix: str = " [en]",
        fail: bool = False,
        omit: Iterable[str] = (),
    ) -> None:
        self.suffix = suffix
        self.fail = fail
        self.omit = set(omit)
        self.calls: List[List[TranslationRequest]] = []
        self.target_languages: List[str] = []
        self.closed = False

    async def translate(
        self,
        requests: List[TranslationRequest],
        target_language: str,
    ) -> List[TranslationResponse]:
        self.calls.append(list(requests))
        self.target_languages.append(target_language)
        if self.fail:
            raise TranslationError("backend unavailable", status_code=503)
        return [
            TranslationResponse(key=r.key, translated_text=r.text + self.suffix)
            for r in requests
            if r.text not in self.omit
        ]

    async def aclose(self) -> None:
        self.closed = True

    @property
    def requested_texts(self) -> List[str]:
        return [r.text for call in self.calls for r in call]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store():
    """A fresh, non-strict TimelineStore."""
    return TimelineStore()


@pytest.fixture
def backend():
    """A RecordingBackend that answers every request."""
    return RecordingBackend()


@pytest.fixture
def speech_fragments():
    """Two phrases separated by a long pause, as in a short clip."""
    return [
        frag("Hello", 0.0, 0.5),
        frag("world", 0.6, 0.4),
        frag("Bye", 5.0, 0.3),
    ]
