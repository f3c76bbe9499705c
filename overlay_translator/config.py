"""Configuration constants, segmentation and timeline tuning, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Segmentation thresholds, chunk windowing, OCR
filtering, and translation backend settings are plain module-level
values — not buried in logic — so they can be tuned per deployment
without touching the algorithms.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level values read from the environment with defaults. The
load_translation_base_url() function provides a clear error when the HTTP
backend is selected without an endpoint.

RULES:
- MAX_PHRASE_DURATION_S bounds phrase span unless the phrase is one fragment
- GAP_SPLIT_RATIO is the "largest gap vs mean gap" threshold (1.5)
- EXACT_MATCH_TOLERANCE_S is the timeline's exact-match window (1 ms)
- Audio is recognized in CHUNK_DURATION_S windows overlapping by CHUNK_OVERLAP_S
- Per-frame OCR detections below MIN_OCR_CONFIDENCE are discarded
- TRANSLATION_BACKEND is "echo" (offline) or "http" (LibreTranslate-style API)
- All defaults can be overridden via environment variables
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

MAX_PHRASE_DURATION_S = float(os.getenv("MAX_PHRASE_DURATION_S", "5.0"))
GAP_SPLIT_RATIO = float(os.getenv("GAP_SPLIT_RATIO", "1.5"))

# ---------------------------------------------------------------------------
# Timeline lookup
# ---------------------------------------------------------------------------

EXACT_MATCH_TOLERANCE_S = 0.001
"""Timestamps closer than this to the query time count as an exact match."""

# ---------------------------------------------------------------------------
# Recognition windows
# ---------------------------------------------------------------------------

CHUNK_DURATION_S = float(os.getenv("CHUNK_DURATION_S", "60.0"))
CHUNK_OVERLAP_S = float(os.getenv("CHUNK_OVERLAP_S", "2.0"))
MIN_OCR_CONFIDENCE = float(os.getenv("MIN_OCR_CONFIDENCE", "0.4"))

SPEECH_OVERLAY_POSITION = (0.2, 0.8, 0.6, 0.1)
"""Lower-third band (x, y, width, height) used for speech-derived units."""

# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------

DEFAULT_SOURCE_LANGUAGE = os.getenv("DEFAULT_SOURCE_LANGUAGE", "auto")
DEFAULT_TARGET_LANGUAGE = os.getenv("DEFAULT_TARGET_LANGUAGE", "en")
TRANSLATION_BACKEND = os.getenv("TRANSLATION_BACKEND", "echo")
TRANSLATION_BATCH_SIZE = int(os.getenv("TRANSLATION_BATCH_SIZE", "0"))
"""Maximum texts per backend call; 0 means one call per batch."""

TRANSLATION_BACKENDS = ("echo", "http")


def load_translation_base_url() -> str:
    """Load the HTTP translation endpoint from the environment.

    WHY: The HTTP backend cannot guess where the translation service
    lives. Failing early with a clear message beats a connection error
    on the first batch.

    HOW: Reads TRANSLATION_BASE_URL from os.environ (populated by python-dotenv).

    RULES:
    - Raises ValueError if the URL is missing or empty
    - Trailing slashes are stripped
    """
    url = os.getenv("TRANSLATION_BASE_URL", "").strip()
    if not url:
        raise ValueError(
            "Translation endpoint not configured. "
            "Add TRANSLATION_BASE_URL to the .env file or select the echo backend."
        )
    return url.rstrip("/")


def load_translation_api_key() -> str | None:
    """Return the optional API key for the HTTP translation backend."""
    key = os.getenv("TRANSLATION_API_KEY", "").strip()
    return key or None
