"""Gap-driven phrase segmentation of recognition fragments.

WHY: Speech recognizers report one timed segment per word with irregular
silences between them. Showing words one by one flickers; showing a whole
60-second window at once is unreadable. Phrases should break at the real
pauses and stay short enough to read while they are on screen.

HOW: split_boundaries() works on index ranges into an immutable fragment
sequence. A range that is a single fragment or spans no more than
max_phrase_duration is a leaf. Otherwise it is split in two — at the
largest inter-fragment gap when that gap stands out against the mean gap,
else at the fragment starting closest to the range's temporal midpoint —
and both halves are processed the same way. build_phrases() turns the
resulting boundaries into Phrase objects. frame_phrases() is the
per-frame (OCR) variant, where every detection is its own phrase.

RULES:
- Leaf: one fragment, or span (last end − first start) <= max_phrase_duration
- gap[i] = fragment[i].start − fragment[i−1].end, for i after the range start
- Split at the largest gap if largest >= gap_ratio × mean gap (ties: lowest index)
- Otherwise split at the start closest to the range midpoint (ties: lowest index)
- Every fragment lands in exactly one phrase, in temporal order
- Empty input → no phrases; a single over-long fragment is emitted whole
- Pure functions: no state survives between calls
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from overlay_translator.config import GAP_SPLIT_RATIO, MAX_PHRASE_DURATION_S
from overlay_translator.core.ir import Phrase, RawFragment

logger = logging.getLogger(__name__)


def _range_span(fragments: Sequence[RawFragment], start: int, end: int) -> float:
    return fragments[end - 1].end_offset - fragments[start].start_offset


def _choose_split(
    fragments: Sequence[RawFragment],
    start: int,
    end: int,
    max_phrase_duration: float,
    gap_ratio: float,
) -> Optional[int]:
    """Return the split index for [start, end), or None if the range is a leaf."""
    if end - start <= 1:
        return None

    span = _range_span(fragments, start, end)
    if span <= max_phrase_duration:
        return None

    gaps: List[Tuple[int, float]] = []
    for i in range(start + 1, end):
        gap = fragments[i].start_offset - fragments[i - 1].end_offset
        gaps.append((i, gap))

    mean_gap = sum(length for _, length in gaps) / len(gaps)
    # max()/min() keep the first of equal candidates, i.e. the lowest index
    largest_index, largest_gap = max(gaps, key=lambda g: g[1])

    if largest_gap >= gap_ratio * mean_gap:
        logger.debug(
            "Splitting [%d, %d) at largest gap %.2fs (mean %.2fs) → index %d",
            start, end, largest_gap, mean_gap, largest_index,
        )
        return largest_index

    midpoint = fragments[start].start_offset + span / 2.0
    middle_index, _ = min(
        gaps,
        key=lambda g: abs(fragments[g[0]].start_offset - midpoint),
    )
    logger.debug(
        "Splitting [%d, %d) near midpoint %.2fs → index %d",
        start, end, midpoint, middle_index,
    )
    return middle_index


def split_boundaries(
    fragments: Sequence[RawFragment],
    start: int = 0,
    end: Optional[int] = None,
    max_phrase_duration: float = MAX_PHRASE_DURATION_S,
    gap_ratio: float = GAP_SPLIT_RATIO,
) -> List[int]:
    """Compute phrase boundary indices for fragments[start:end].

    WHY: Separating "where do phrases break" from "build the phrase text"
    keeps the splitting rule a pure function over indices, which makes the
    coverage and span properties easy to check in isolation.

    HOW: Ranges are processed left-first with an explicit work stack, which
    yields the same boundaries as splitting recursively (left boundaries
    followed by right boundaries minus the shared one) without recursion
    depth limits on long chunks.

    RULES:
    - Returns sorted indices beginning with start and ending with end
    - Consecutive indices delimit one phrase
    - An empty range returns []

    Args:
        fragments: Time-ordered fragments (not modified).
        start: First index of the range.
        end: One past the last index (defaults to len(fragments)).
        max_phrase_duration: Span in seconds above which a range is split.
        gap_ratio: Largest-gap / mean-gap ratio that marks a real pause.

    Returns:
        List of boundary indices.
    """
    if end is None:
        end = len(fragments)
    if end <= start:
        return []

    boundaries = [start]
    pending: List[Tuple[int, int]] = [(start, end)]

    while pending:
        lo, hi = pending.pop()
        split = _choose_split(fragments, lo, hi, max_phrase_duration, gap_ratio)
        if split is None:
            boundaries.append(hi)
        else:
            # Right half pushed first so the left half is resolved first
            pending.append((split, hi))
            pending.append((lo, split))

    return boundaries


def _merge_fragments(fragments: Sequence[RawFragment]) -> Phrase:
    """Build one phrase from a non-empty run of fragments."""
    first = fragments[0]
    last = fragments[-1]
    texts = [f.text.strip() for f in fragments]
    text = " ".join(t for t in texts if t)
    start_time = first.start_offset
    end_time = max(last.end_offset, start_time)

    return Phrase(
        text=text,
        start_time=start_time,
        end_time=end_time,
        fragment_count=len(fragments),
        confidence=min(f.confidence for f in fragments),
    )


def build_phrases(
    fragments: Sequence[RawFragment],
    max_phrase_duration: float = MAX_PHRASE_DURATION_S,
    gap_ratio: float = GAP_SPLIT_RATIO,
) -> List[Phrase]:
    """Merge a chunk of time-ordered fragments into phrases.

    Args:
        fragments: One chunk of speech fragments, ordered by start time.
        max_phrase_duration: Maximum span of a multi-fragment phrase.
        gap_ratio: Threshold for treating the largest gap as a pause.

    Returns:
        Phrases in temporal order covering every fragment exactly once.
        Phrases whose fragments carry only whitespace have empty text;
        callers decide whether to display them.
    """
    buffer = tuple(fragments)
    boundaries = split_boundaries(
        buffer,
        max_phrase_duration=max_phrase_duration,
        gap_ratio=gap_ratio,
    )

    phrases = [
        _merge_fragments(buffer[lo:hi])
        for lo, hi in zip(boundaries, boundaries[1:])
    ]
    logger.debug("Built %d phrases from %d fragments", len(phrases), len(buffer))
    return phrases


def frame_phrases(fragments: Sequence[RawFragment]) -> List[Phrase]:
    """Per-frame variant: one phrase per detection, position preserved.

    Frame detections share no temporal continuity to merge across, so the
    mapping is the identity.
    """
    return [
        Phrase(
            text=f.text.strip(),
            start_time=f.start_offset,
            end_time=max(f.end_offset, f.start_offset),
            fragment_count=1,
            confidence=f.confidence,
            position=f.position,
        )
        for f in fragments
    ]
