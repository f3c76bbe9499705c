"""Intermediate representation dataclasses for fragments, phrases, and display units.

WHY: Recognition engines return flat, noisy fragment lists; the overlay
renderer wants positioned, translated text keyed by time. The IR gives
every stage one well-typed vocabulary, decoupling segmentation, storage,
and translation from each other and from the engines.

HOW: Four dataclasses form a pipeline:
  RawFragment — one recognized word/box with timing and confidence
  Phrase      — one or more fragments merged by the segmenter
  Rect        — a normalized overlay rectangle (top-left origin)
  DisplayUnit — the stored, queryable, translatable unit

RULES:
- All times are in float seconds from the start of the media
- RawFragment and Phrase are immutable (frozen)
- DisplayUnit.translated_text is attached at most once
- Two units are textually identical iff their original_text strings are equal
- to_dict()/from_dict() implement the camelCase test-fixture format
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from overlay_translator.config import SPEECH_OVERLAY_POSITION


@dataclass(frozen=True)
class Rect:
    """A normalized rectangle (0–1 coordinates, top-left origin).

    WHY: Overlay positions must survive any output resolution, so both
    OCR detections and the fixed speech band are stored normalized.

    HOW: Plain value object. from_bottom_left() converts boxes from
    engines that use a bottom-left origin by flipping the y axis.

    RULES:
    - x, y, width, height are fractions of the frame
    - y is measured from the top edge
    """

    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_bottom_left(cls, x: float, y: float, width: float, height: float) -> Rect:
        """Convert a bottom-left-origin box to top-left origin."""
        return cls(x=x, y=1.0 - y - height, width=width, height=height)

    @classmethod
    def from_tuple(cls, values: Tuple[float, float, float, float]) -> Rect:
        x, y, width, height = values
        return cls(x=x, y=y, width=width, height=height)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}

    @classmethod
    def from_dict(cls, data: Dict[str, Any], bottom_left: bool = False) -> Rect:
        """Parse {x, y, width, height}; flip y when the box uses a bottom-left origin."""
        x = float(data["x"])
        y = float(data["y"])
        width = float(data["width"])
        height = float(data["height"])
        if bottom_left:
            return cls.from_bottom_left(x, y, width, height)
        return cls(x=x, y=y, width=width, height=height)


SPEECH_OVERLAY_RECT = Rect.from_tuple(SPEECH_OVERLAY_POSITION)
"""Default position for units built from speech (lower-third band)."""


@dataclass(frozen=True)
class RawFragment:
    """A single timed, low-level unit of recognized text.

    WHY: Speech engines report one word per timed segment, OCR engines one
    box per detection. Both reduce to text + start + duration + confidence.

    HOW: Produced by a RecognitionSource for one chunk and consumed
    immediately by the segmenter.

    RULES:
    - start_offset / duration: float seconds (absolute media time)
    - confidence: 0.0–1.0 as reported by the engine
    - position: only set for per-frame (spatial) detections
    """

    text: str
    start_offset: float
    duration: float
    confidence: float = 1.0
    position: Optional[Rect] = None

    @property
    def end_offset(self) -> float:
        return self.start_offset + self.duration

    @classmethod
    def from_dict(cls, data: Dict[str, Any], bottom_left: bool = False) -> RawFragment:
        """Parse a fragment from a recognition JSON object.

        Accepts camelCase (startOffset) and snake_case (start_offset) keys.
        With bottom_left=True the position box is converted to top-left origin.
        """
        start = data["startOffset"] if "startOffset" in data else data["start_offset"]
        position = data.get("position")
        return cls(
            text=str(data["text"]),
            start_offset=float(start),
            duration=float(data.get("duration", 0.0)),
            confidence=float(data.get("confidence", 1.0)),
            position=Rect.from_dict(position, bottom_left) if position else None,
        )


@dataclass(frozen=True)
class Phrase:
    """A temporally coherent merge of one or more RawFragments.

    RULES:
    - text: fragment texts trimmed and joined with single spaces
    - start_time: first fragment's start; end_time: last fragment's end
    - end_time >= start_time
    - confidence: minimum across contributing fragments
    - position: only carried over in the per-frame variant
    """

    text: str
    start_time: float
    end_time: float
    fragment_count: int = 1
    confidence: float = 1.0
    position: Optional[Rect] = None

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time


@dataclass
class DisplayUnit:
    """The unit of text stored for playback-time lookup.

    WHY: The overlay renderer needs text, an optional translation, a
    position, and a time key. Units are created once, then mutated exactly
    once when their translation arrives, so later queries see it.

    HOW: Built from a Phrase via from_phrase(), or directly from a single
    detection. The TimelineStore owns the instances; the dispatcher attaches
    translations through the store.

    RULES:
    - id: opaque hex UUID, unique per unit
    - time_start is the sort key; time_end is optional
    - translated_text is None until attached; a second attach is ignored
    - display_text falls back to original_text while untranslated
    """

    original_text: str
    time_start: float
    time_end: Optional[float] = None
    position: Optional[Rect] = None
    confidence: float = 1.0
    translated_text: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @classmethod
    def from_phrase(cls, phrase: Phrase, position: Optional[Rect] = None) -> DisplayUnit:
        """Create a unit from a phrase, preferring the phrase's own position."""
        return cls(
            original_text=phrase.text,
            time_start=phrase.start_time,
            time_end=phrase.end_time,
            position=phrase.position or position,
            confidence=phrase.confidence,
        )

    @property
    def display_text(self) -> str:
        if self.translated_text is not None:
            return self.translated_text
        return self.original_text

    @property
    def is_translated(self) -> bool:
        return self.translated_text is not None

    def attach_translation(self, translated_text: str) -> bool:
        """Attach the translation if none is present.

        Returns:
            True if the translation was attached, False if one already existed.
        """
        if self.translated_text is not None:
            return False
        self.translated_text = translated_text
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the test-fixture format.

        Optional fields (translatedText, timeEnd, position) are omitted
        when unset.
        """
        data: Dict[str, Any] = {
            "id": self.id,
            "originalText": self.original_text,
            "timeStart": self.time_start,
            "confidence": self.confidence,
        }
        if self.translated_text is not None:
            data["translatedText"] = self.translated_text
        if self.time_end is not None:
            data["timeEnd"] = self.time_end
        if self.position is not None:
            data["position"] = self.position.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> DisplayUnit:
        position = data.get("position")
        time_end = data.get("timeEnd")
        return cls(
            id=str(data["id"]),
            original_text=data["originalText"],
            translated_text=data.get("translatedText"),
            time_start=float(data["timeStart"]),
            time_end=float(time_end) if time_end is not None else None,
            position=Rect.from_dict(position) if position else None,
            confidence=float(data["confidence"]),
        )
