"""Processing session — recognition chunks in, translated timeline out.

WHY: One session ties the stages together: chunks arrive from the
recognition source, are segmented into phrases, become display units in
the TimelineStore, and are handed to the translation dispatcher. The
render loop (or the HTTP API) can query the store the whole time; the
session never blocks it.

HOW: SessionPipeline.run() is a single async loop over source.chunks().
Segmentation and storage are synchronous; the only awaits are the next
chunk and the translation call. A shared CancellationFlag is checked
between chunks and by the dispatcher before every backend request.

RULES:
- mode "speech": build_phrases() per chunk, units placed in the lower-third band
- mode "frames": confidence filter, then one unit per detection at its own box
- Phrases with empty text never become units
- Units that start before the stored tail were already shown by the
  previous overlapping window and are dropped (logged at DEBUG, counted in
  summary.overlap_dropped); a unit at the tail time with the same text as
  a stored tail unit is a re-recognition and is dropped too
- TranslationError: logged, counted, session continues (units show originals)
- CancellationError: run ends quietly with summary.cancelled = True
- RecognitionError: propagates to the caller (fatal)
- Cancellation never rolls back the store or the translation cache
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from overlay_translator.config import MAX_PHRASE_DURATION_S, MIN_OCR_CONFIDENCE
from overlay_translator.core.cancellation import CancellationFlag
from overlay_translator.core.errors import CancellationError, TranslationError
from overlay_translator.core.ir import SPEECH_OVERLAY_RECT, DisplayUnit, Phrase
from overlay_translator.core.segmenter import build_phrases, frame_phrases
from overlay_translator.core.timeline import TimelineStore
from overlay_translator.recognition.source import (
    RECOGNITION_MODES,
    RecognitionChunk,
    RecognitionSource,
    filter_confident,
)
from overlay_translator.translation.dispatcher import TranslationDispatcher

logger = logging.getLogger(__name__)


@dataclass
class SessionSummary:
    """Counters reported when a session run ends."""

    chunks_processed: int = 0
    units_appended: int = 0
    overlap_dropped: int = 0
    translation_failures: int = 0
    cancelled: bool = False


class SessionPipeline:
    """Drive one processing session from a recognition source to a store.

    WHY: The CLI, the HTTP API and the tests all run the same loop; they
    differ only in where chunks come from and who reads the store.

    HOW: Holds the source, store, optional dispatcher, and the cancel flag.
    When a dispatcher is given, its flag is replaced by the session's flag
    so that cancel() reaches every stage.

    RULES:
    - run() may be awaited once per pipeline instance
    - on_status(message) receives human-readable progress lines
    - on_progress(fraction) is called after each chunk when the total is known
    """

    def __init__(
        self,
        source: RecognitionSource,
        store: TimelineStore,
        dispatcher: Optional[TranslationDispatcher] = None,
        mode: str = "speech",
        max_phrase_duration: float = MAX_PHRASE_DURATION_S,
        min_confidence: float = MIN_OCR_CONFIDENCE,
        cancel_flag: Optional[CancellationFlag] = None,
        on_status: Optional[Callable[[str], None]] = None,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> None:
        if mode not in RECOGNITION_MODES:
            raise ValueError(
                "Unknown mode '{}'. Expected one of: {}".format(mode, ", ".join(RECOGNITION_MODES))
            )
        self.source = source
        self.store = store
        self.mode = mode
        self.max_phrase_duration = max_phrase_duration
        self.min_confidence = min_confidence
        self.cancel_flag = cancel_flag if cancel_flag is not None else CancellationFlag()
        self.dispatcher = dispatcher
        if dispatcher is not None:
            dispatcher.cancel_flag = self.cancel_flag
        self._on_status = on_status
        self._on_progress = on_progress

    def cancel(self) -> None:
        self.cancel_flag.cancel()

    def _status(self, message: str) -> None:
        logger.info(message)
        if self._on_status:
            self._on_status(message)

    def _phrases_for(self, chunk: RecognitionChunk) -> List[Phrase]:
        if self.mode == "frames":
            detections = filter_confident(chunk.fragments, self.min_confidence)
            return frame_phrases(detections)
        return build_phrases(chunk.fragments, max_phrase_duration=self.max_phrase_duration)

    def units_for(self, chunk: RecognitionChunk) -> List[DisplayUnit]:
        """Convert one chunk into display units, skipping empty phrases."""
        position = SPEECH_OVERLAY_RECT if self.mode == "speech" else None
        return [
            DisplayUnit.from_phrase(phrase, position=position)
            for phrase in self._phrases_for(chunk)
            if phrase.text
        ]

    def _drop_overlap(self, units: List[DisplayUnit]) -> List[DisplayUnit]:
        tail = self.store.tail()
        if not tail:
            return units
        tail_time = tail[0].time_start
        tail_texts = {u.original_text for u in tail}
        return [
            u for u in units
            if u.time_start > tail_time
            or (u.time_start == tail_time and u.original_text not in tail_texts)
        ]

    async def run(self) -> SessionSummary:
        """Process every chunk of the source.

        HOW: For each chunk: check the flag, build units, drop the ones the
        previous window already produced, append the rest, then translate
        the batch. Translation failures are counted and the loop
        moves on; a cancellation anywhere ends the loop.

        Returns:
            SessionSummary with counters and the cancelled flag.

        Raises:
            RecognitionError: The source failed to produce a chunk.
        """
        summary = SessionSummary()
        self._status("Starting {} session".format(self.mode))

        try:
            async for chunk in self.source.chunks():
                self.cancel_flag.raise_if_cancelled("chunk {}".format(chunk.index))

                units = self.units_for(chunk)
                fresh = self._drop_overlap(units)
                if len(fresh) < len(units):
                    summary.overlap_dropped += len(units) - len(fresh)
                    logger.debug(
                        "Chunk %d: dropped %d units already covered by the previous window",
                        chunk.index, len(units) - len(fresh),
                    )
                units = fresh

                summary.units_appended += self.store.append(units)
                summary.chunks_processed += 1
                self._status("  Chunk {}: {} units ({:.1f}s to {:.1f}s)".format(
                    chunk.index, len(units), chunk.window_start, chunk.window_end,
                ))

                if self.dispatcher is not None and units:
                    try:
                        report = await self.dispatcher.translate_batch(units)
                    except TranslationError as exc:
                        summary.translation_failures += 1
                        logger.warning(
                            "Translation failed for chunk %d: %s", chunk.index, exc,
                        )
                        self._status("  Translation failed for chunk {}: {}".format(
                            chunk.index, exc,
                        ))
                    else:
                        logger.debug(
                            "Chunk %d: %d requested, %d units translated",
                            chunk.index, report.requested, report.units_updated,
                        )

                if self._on_progress and chunk.total:
                    self._on_progress(min(1.0, (chunk.index + 1) / chunk.total))
        except CancellationError as exc:
            summary.cancelled = True
            logger.info("Session cancelled: %s", exc)
            self._status("Cancelled.")
            return summary

        self._status("Done: {} chunks, {} units".format(
            summary.chunks_processed, summary.units_appended,
        ))
        return summary
