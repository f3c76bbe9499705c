"""Recognition sources — ordered chunks of raw fragments for a session.

WHY: The recognition engine (speech-to-text on audio windows, OCR on
sampled frames) is an external collaborator. The pipeline only needs an
async stream of chunks, each holding the time-ordered fragments of one
window, so engines and test fixtures can be plugged in the same way.

HOW: RecognitionChunk is the unit of delivery. RecognitionSource is an ABC
whose chunks() method is an async iterator. StaticRecognitionSource serves
prepared chunks from memory; JsonRecognitionSource loads a JSON document
with either explicit chunks or a flat fragment list that is cut into
overlapping windows with plan_chunk_windows().

RULES:
- Chunks are yielded in order of non-decreasing window start
- Fragments inside one chunk are time-ordered
- Consecutive windows may overlap; fragments in the overlap are delivered
  in both chunks (reconciling them is a caller policy)
- Any failure to produce a chunk raises RecognitionError
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple, Union

from overlay_translator.config import (
    CHUNK_DURATION_S,
    CHUNK_OVERLAP_S,
    MIN_OCR_CONFIDENCE,
)
from overlay_translator.core.errors import RecognitionError
from overlay_translator.core.ir import RawFragment

logger = logging.getLogger(__name__)

RECOGNITION_MODES = ("speech", "frames")
POSITION_ORIGINS = ("top-left", "bottom-left")


@dataclass
class RecognitionChunk:
    """One bounded time window of recognized fragments.

    RULES:
    - index: 0-based position of the chunk in the session
    - window_start / window_end: seconds covered by the recognition window
    - total: number of chunks in the session when known (for progress)
    """

    index: int
    window_start: float
    window_end: float
    fragments: List[RawFragment] = field(default_factory=list)
    total: Optional[int] = None


class RecognitionSource(ABC):
    """Abstract producer of recognition chunks."""

    @abstractmethod
    def chunks(self) -> AsyncIterator[RecognitionChunk]:
        """Yield chunks in time order.

        Raises:
            RecognitionError: The engine failed; fatal to the session.
        """


def plan_chunk_windows(
    duration: float,
    chunk_duration: float = CHUNK_DURATION_S,
    overlap: float = CHUNK_OVERLAP_S,
) -> List[Tuple[float, float]]:
    """Cut [0, duration) into recognition windows that overlap their predecessor.

    WHY: Speech recognizers work on bounded audio windows, and cutting a
    window exactly at a boundary splits whatever phrase was being spoken.
    Starting every window after the first `overlap` seconds early gives the
    recognizer the whole phrase at least once.

    HOW: Window i nominally covers [i × chunk, (i + 1) × chunk); its start is
    pulled back by `overlap` for i > 0 (never below 0) and its end is
    clamped to `duration`.

    RULES:
    - duration <= 0 → no windows
    - ceil(duration / chunk_duration) windows
    - Consecutive windows leave no gap, so every time in [0, duration] is covered
    - chunk_duration <= 0 or overlap < 0 raises ValueError
    """
    if chunk_duration <= 0:
        raise ValueError("chunk_duration must be positive, got {}".format(chunk_duration))
    if overlap < 0:
        raise ValueError("overlap must not be negative, got {}".format(overlap))
    if duration <= 0:
        return []

    count = int(math.ceil(duration / chunk_duration))
    windows: List[Tuple[float, float]] = []
    for i in range(count):
        nominal_start = i * chunk_duration
        start = max(0.0, nominal_start - overlap) if i > 0 else 0.0
        end = min(nominal_start + chunk_duration, duration)
        windows.append((start, end))
    return windows


def filter_confident(
    fragments: Sequence[RawFragment],
    minimum: float = MIN_OCR_CONFIDENCE,
) -> List[RawFragment]:
    """Drop per-frame detections whose confidence is below `minimum`."""
    return [f for f in fragments if f.confidence >= minimum]


def window_fragments(
    fragments: Sequence[RawFragment],
    chunk_duration: float = CHUNK_DURATION_S,
    overlap: float = CHUNK_OVERLAP_S,
    duration: Optional[float] = None,
) -> List[RecognitionChunk]:
    """Group a flat fragment list into overlapping chunks.

    A fragment belongs to every window its start offset falls in, so
    fragments inside an overlap region appear in two chunks.

    RULES:
    - Fragments are stable-sorted by start_offset first
    - Every fragment lands in at least one chunk; a fragment starting
      before 0 or after `duration` raises RecognitionError
    - chunk_duration <= 0 or overlap < 0 raises RecognitionError
    """
    if chunk_duration <= 0 or overlap < 0:
        raise RecognitionError(
            "Invalid windowing: chunk_duration={}, overlap={}".format(chunk_duration, overlap)
        )

    ordered = sorted(fragments, key=lambda f: f.start_offset)
    if duration is None:
        duration = max((f.end_offset for f in ordered), default=0.0)
        # A fragment starting exactly at the end still needs a window
        if ordered and ordered[-1].start_offset >= duration:
            duration = ordered[-1].start_offset + 1e-6

    if ordered:
        first, last_fragment = ordered[0], ordered[-1]
        if first.start_offset < 0:
            raise RecognitionError(
                "Fragment {!r} starts before 0 ({}s)".format(first.text, first.start_offset)
            )
        if last_fragment.start_offset > duration or duration <= 0:
            raise RecognitionError(
                "Fragment {!r} at {}s lies outside the media duration {}s".format(
                    last_fragment.text, last_fragment.start_offset, duration,
                )
            )

    windows = plan_chunk_windows(duration, chunk_duration, overlap)
    chunks: List[RecognitionChunk] = []
    for index, (start, end) in enumerate(windows):
        last = index == len(windows) - 1
        members = [
            f for f in ordered
            if f.start_offset >= start and (f.start_offset < end or (last and f.start_offset <= end))
        ]
        chunks.append(RecognitionChunk(
            index=index,
            window_start=start,
            window_end=end,
            fragments=members,
            total=len(windows),
        ))
    return chunks


def check_time_order(fragments: Sequence[RawFragment], where: str) -> None:
    """Raise RecognitionError unless start offsets are non-decreasing."""
    for previous, current in zip(fragments, fragments[1:]):
        if current.start_offset < previous.start_offset:
            raise RecognitionError(
                "{}: fragment {!r} at {}s comes after {!r} at {}s".format(
                    where, current.text, current.start_offset,
                    previous.text, previous.start_offset,
                )
            )


class StaticRecognitionSource(RecognitionSource):
    """Serve prepared chunks from memory.

    WHY: Tests and the HTTP API receive fragments up front; they still go
    through the same async chunk loop as a live engine.

    HOW: Yields each chunk in order, optionally sleeping `delay` seconds
    before each one to simulate engine latency. A `fail_at` index raises
    RecognitionError when that chunk is reached.
    """

    def __init__(
        self,
        chunks: Sequence[RecognitionChunk],
        delay: float = 0.0,
        fail_at: Optional[int] = None,
    ) -> None:
        self._chunks = list(chunks)
        self._delay = delay
        self._fail_at = fail_at

    @classmethod
    def from_fragment_lists(
        cls,
        fragment_lists: Sequence[Sequence[RawFragment]],
        **kwargs: Any,
    ) -> StaticRecognitionSource:
        """Build a source with one chunk per fragment list."""
        chunks = []
        total = len(fragment_lists)
        for index, fragments in enumerate(fragment_lists):
            frags = list(fragments)
            start = frags[0].start_offset if frags else 0.0
            end = max((f.end_offset for f in frags), default=start)
            chunks.append(RecognitionChunk(
                index=index,
                window_start=start,
                window_end=end,
                fragments=frags,
                total=total,
            ))
        return cls(chunks, **kwargs)

    async def chunks(self) -> AsyncIterator[RecognitionChunk]:
        for chunk in self._chunks:
            if self._delay:
                await asyncio.sleep(self._delay)
            if self._fail_at is not None and chunk.index == self._fail_at:
                raise RecognitionError(
                    "Recognition failed for chunk {}".format(chunk.index)
                )
            yield chunk


def _parse_fragments(items: Any, where: str, bottom_left: bool = False) -> List[RawFragment]:
    if not isinstance(items, list):
        raise RecognitionError("{}: 'fragments' must be a list".format(where))
    try:
        return [RawFragment.from_dict(item, bottom_left) for item in items]
    except (KeyError, TypeError, ValueError) as exc:
        raise RecognitionError("{}: invalid fragment ({})".format(where, exc)) from exc


def parse_recognition_document(
    data: Dict[str, Any],
    chunk_duration: float = CHUNK_DURATION_S,
    overlap: float = CHUNK_OVERLAP_S,
) -> List[RecognitionChunk]:
    """Turn a recognition JSON document into chunks.

    WHY: Recognition output is exchanged as JSON between the engine, the
    CLI, and the HTTP API. Two shapes are accepted so that both pre-chunked
    engine output and flat transcripts can be replayed.

    HOW: With "chunks", each entry becomes one RecognitionChunk (window
    bounds default to its fragments' extent). With "fragments", the flat
    list is windowed by window_fragments().

    RULES:
    - Exactly one of "chunks" or "fragments" must be present
    - Fragment keys: text, startOffset (or start_offset), duration,
      confidence, optional position {x, y, width, height}
    - Fragments inside one explicit chunk must be in start order
    - "origin" is "top-left" (default) or "bottom-left"; bottom-left
      position boxes are flipped to top-left on load
    - Any structural problem raises RecognitionError
    """
    if not isinstance(data, dict):
        raise RecognitionError("Recognition document must be a JSON object")

    origin = data.get("origin", "top-left")
    if origin not in POSITION_ORIGINS:
        raise RecognitionError(
            "Unknown position origin {!r}; expected one of {}".format(origin, ", ".join(POSITION_ORIGINS))
        )
    bottom_left = origin == "bottom-left"

    if "chunks" in data:
        raw_chunks = data["chunks"]
        if not isinstance(raw_chunks, list):
            raise RecognitionError("'chunks' must be a list")
        chunks: List[RecognitionChunk] = []
        for index, raw in enumerate(raw_chunks):
            if not isinstance(raw, dict):
                raise RecognitionError("chunk {}: must be an object".format(index))
            where = "chunk {}".format(index)
            fragments = _parse_fragments(raw.get("fragments", []), where, bottom_left)
            check_time_order(fragments, where)
            start = raw.get("windowStart")
            end = raw.get("windowEnd")
            if start is None:
                start = fragments[0].start_offset if fragments else 0.0
            if end is None:
                end = max((f.end_offset for f in fragments), default=float(start))
            chunks.append(RecognitionChunk(
                index=index,
                window_start=float(start),
                window_end=float(end),
                fragments=fragments,
                total=len(raw_chunks),
            ))
        return chunks

    if "fragments" in data:
        fragments = _parse_fragments(data["fragments"], "document", bottom_left)
        duration = data.get("duration")
        return window_fragments(
            fragments,
            chunk_duration=chunk_duration,
            overlap=overlap,
            duration=float(duration) if duration is not None else None,
        )

    raise RecognitionError("Recognition document needs 'chunks' or 'fragments'")


class JsonRecognitionSource(RecognitionSource):
    """Replay recognition output stored in a JSON file.

    RULES:
    - The file is read when iteration starts, not at construction
    - Missing files and invalid JSON raise RecognitionError
    """

    def __init__(
        self,
        path: Union[str, Path],
        chunk_duration: float = CHUNK_DURATION_S,
        overlap: float = CHUNK_OVERLAP_S,
    ) -> None:
        self.path = Path(path)
        self._chunk_duration = chunk_duration
        self._overlap = overlap

    def load(self) -> List[RecognitionChunk]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise RecognitionError("Cannot read {}: {}".format(self.path, exc)) from exc
        except json.JSONDecodeError as exc:
            raise RecognitionError("Invalid JSON in {}: {}".format(self.path, exc)) from exc

        chunks = parse_recognition_document(data, self._chunk_duration, self._overlap)
        logger.info("Loaded %d chunks from %s", len(chunks), self.path)
        return chunks

    async def chunks(self) -> AsyncIterator[RecognitionChunk]:
        for chunk in self.load():
            yield chunk
