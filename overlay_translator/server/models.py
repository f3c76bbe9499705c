"""Pydantic request/response models for the session API.

WHY: The FastAPI endpoints need typed schemas for request validation,
response serialization, and automatic OpenAPI documentation. Pydantic
models enforce field types at runtime and generate JSON Schema that
appears in the /docs UI.

HOW: Requests carry recognition output (chunks of fragments) plus the
session configuration. Responses mirror the internal Session and
DisplayUnit state without exposing the store itself. All models include
Field descriptions for rich OpenAPI docs.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Enum values match internal constants exactly (modes, backend names)
- Unit responses use the same camelCase keys as the JSON fixture
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from overlay_translator.config import DEFAULT_TARGET_LANGUAGE


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class RecognitionMode(str, Enum):
    """Recognition variant the fragments came from.

    RULES:
    - Values match overlay_translator.recognition.RECOGNITION_MODES
    """

    speech = "speech"
    frames = "frames"


class BackendName(str, Enum):
    """Translation backends selectable per session."""

    echo = "echo"
    http = "http"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RectModel(BaseModel):
    """Normalized overlay rectangle (top-left origin)."""

    x: float = Field(description="Left edge as a fraction of frame width.")
    y: float = Field(description="Top edge as a fraction of frame height.")
    width: float = Field(ge=0, description="Width as a fraction of frame width.")
    height: float = Field(ge=0, description="Height as a fraction of frame height.")


class FragmentModel(BaseModel):
    """One recognized word (speech) or text box (frames)."""

    text: str = Field(description="Recognized text.")
    start_offset: float = Field(ge=0, description="Start time in seconds from the start of the media.")
    duration: float = Field(default=0.0, ge=0, description="Duration in seconds.")
    confidence: float = Field(default=1.0, ge=0, le=1, description="Engine confidence, 0 to 1.")
    position: Optional[RectModel] = Field(
        default=None,
        description="Bounding box for per-frame detections.",
    )


class ChunkModel(BaseModel):
    """One recognition window of fragments.

    RULES:
    - fragments must be in non-decreasing start_offset order; FastAPI
      reports a violation as 422 like any other body validation error
    """

    window_start: Optional[float] = Field(
        default=None,
        description="Window start in seconds. Defaults to the first fragment's start.",
    )
    window_end: Optional[float] = Field(
        default=None,
        description="Window end in seconds. Defaults to the last fragment's end.",
    )
    fragments: List[FragmentModel] = Field(
        default_factory=list,
        description="Time-ordered fragments recognized in this window.",
    )

    @field_validator("fragments")
    @classmethod
    def _validate_fragment_order(cls, value: List[FragmentModel]) -> List[FragmentModel]:
        for previous, current in zip(value, value[1:]):
            if current.start_offset < previous.start_offset:
                raise ValueError(
                    "fragments must be ordered by start_offset: {!r} at {}s comes after "
                    "{!r} at {}s".format(
                        current.text, current.start_offset, previous.text, previous.start_offset,
                    )
                )
        return value



class SessionCreateRequest(BaseModel):
    """Body of POST /sessions.

    RULES:
    - chunks are processed in the order given
    - max_phrase_duration defaults to the server's MAX_PHRASE_DURATION_S
    - backend defaults to the server's TRANSLATION_BACKEND
    """

    mode: RecognitionMode = Field(
        default=RecognitionMode.speech,
        description="Recognition variant: 'speech' (segmented) or 'frames' (per detection).",
    )
    target_language: str = Field(
        default=DEFAULT_TARGET_LANGUAGE,
        description="Target language code for translations.",
    )
    max_phrase_duration: Optional[float] = Field(
        default=None,
        gt=0,
        description="Maximum phrase span in seconds for speech segmentation.",
    )
    backend: Optional[BackendName] = Field(
        default=None,
        description="Translation backend to use for this session.",
    )
    chunks: List[ChunkModel] = Field(
        default_factory=list,
        description="Recognition chunks to process.",
    )

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "mode": "speech",
                "target_language": "en",
                "chunks": [
                    {
                        "fragments": [
                            {"text": "Guten", "start_offset": 0.0, "duration": 0.4},
                            {"text": "Tag", "start_offset": 0.5, "duration": 0.4},
                        ]
                    }
                ],
            }
        ]
    }}


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionCreatedResponse(BaseModel):
    """Response returned when a new session is accepted."""

    id: str = Field(description="Unique session identifier for polling and queries.")
    status: str = Field(description="Initial session status (always 'pending').")


class SessionResponse(BaseModel):
    """Session status response.

    RULES:
    - error is only set when status is 'failed'
    - translation_failures counts chunks whose translation batch failed
    """

    id: str = Field(description="Unique session identifier.")
    status: str = Field(description="Current session status.")
    created_at: float = Field(description="Creation timestamp (Unix epoch seconds).")
    config: Dict[str, Any] = Field(description="Configuration used for this session.")
    progress: float = Field(description="Fraction of chunks processed, 0 to 1.")
    chunks_processed: int = Field(description="Chunks processed so far.")
    unit_count: int = Field(description="Display units stored so far.")
    translated_count: int = Field(description="Stored units that have a translation.")
    translation_failures: int = Field(description="Translation batches that failed.")
    error: Optional[str] = Field(
        default=None,
        description="Error message, only present when status is 'failed'.",
    )


class UnitModel(BaseModel):
    """One display unit, in the camelCase fixture shape."""

    id: str = Field(description="Opaque unit identifier.")
    originalText: str = Field(description="Recognized source text.")
    translatedText: Optional[str] = Field(
        default=None,
        description="Translation, absent until it has arrived.",
    )
    timeStart: float = Field(description="Start time in seconds.")
    timeEnd: Optional[float] = Field(default=None, description="End time in seconds.")
    position: Optional[RectModel] = Field(default=None, description="Overlay rectangle.")
    confidence: float = Field(description="Recognition confidence, 0 to 1.")


class UnitListResponse(BaseModel):
    """Units returned by a timeline query."""

    session_id: str = Field(description="The session these units belong to.")
    time: Optional[float] = Field(
        default=None,
        description="Query time in seconds, or null when listing every unit.",
    )
    units: List[UnitModel] = Field(description="Matching display units.")


class FormatInfo(BaseModel):
    """Description of an available export format."""

    key: str = Field(description="Format identifier used in export URLs.")
    name: str = Field(description="Human-readable format name.")
    suffix: str = Field(description="File suffix produced (e.g. '-units.json').")


class ErrorResponse(BaseModel):
    """Standard error response body.

    RULES:
    - detail is always a human-readable error message
    """

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
    sessions: int = Field(description="Sessions currently held in memory.")
