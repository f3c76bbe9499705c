"""Recognition side of the pipeline — chunk sources and window planning.

WHY: The recognition engine is external; this package defines how its
output reaches the core (ordered chunks of RawFragments) and ships the
sources used by the CLI, the HTTP API, and the tests.

HOW: source.py holds the RecognitionSource contract, the window planner,
the OCR confidence filter, and the in-memory and JSON sources.

RULES:
- Sources raise RecognitionError, never bare engine exceptions
- Overlapping windows deliver overlap fragments twice; no dedup here
"""

from overlay_translator.recognition.source import (
    RECOGNITION_MODES,
    JsonRecognitionSource,
    RecognitionChunk,
    RecognitionSource,
    StaticRecognitionSource,
    filter_confident,
    parse_recognition_document,
    plan_chunk_windows,
    window_fragments,
)

__all__ = [
    "RECOGNITION_MODES",
    "JsonRecognitionSource",
    "RecognitionChunk",
    "RecognitionSource",
    "StaticRecognitionSource",
    "filter_confident",
    "parse_recognition_document",
    "plan_chunk_windows",
    "window_fragments",
]
