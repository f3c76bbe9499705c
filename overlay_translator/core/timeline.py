"""Time-sorted store of display units with nearest-timestamp lookup.

WHY: The playback loop asks "what should be on screen now?" on every
rendered frame while the processing task keeps appending units and the
translation dispatcher keeps attaching translations. The answer must come
back in O(log n) without ever waiting on recognition or translation.

HOW: Units live in a list sorted by time_start, with a parallel list of
timestamps for bisect. A threading.Lock guards every structural read and
mutation, and nothing slow ever happens while it is held. A text → units
index lets the dispatcher attach a translation to every occurrence of a
string without scanning the whole timeline.

RULES:
- append() expects non-decreasing timestamps; a violation is logged and the
  unit is inserted at its sorted position (strict mode raises instead)
- query(t): a unit within EXACT_MATCH_TOLERANCE_S of t is an exact match;
  otherwise the closer of the bracketing pair wins, ties go to the earlier unit
- Before the first unit → first unit's set; after the last → last unit's set
- The returned set is every unit sharing the selected unit's time_start
- Empty store → []
- Append listeners run after the lock is released
"""

from __future__ import annotations

import bisect
import logging
import threading
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from overlay_translator.config import EXACT_MATCH_TOLERANCE_S
from overlay_translator.core.errors import InvariantViolation
from overlay_translator.core.ir import DisplayUnit

logger = logging.getLogger(__name__)

AppendListener = Callable[[List[DisplayUnit]], None]


class TimelineStore:
    """Thread-safe, time-sorted accumulation of DisplayUnits for one session.

    WHY: A single producer (the processing pipeline) appends and one or
    more readers (render loop, HTTP handlers) query concurrently. The store
    is the only owner of the unit objects so that translations attached
    through it are visible to every later query.

    HOW: Sorted list + parallel timestamp list + bisect, all under one
    short-lived lock. Out-of-order appends fall back to a linear insertion.

    RULES:
    - query() never blocks on anything but the structural lock
    - apply_translations() only fills units that have no translation yet
    - Units are never removed for the lifetime of the store
    """

    def __init__(
        self,
        strict: bool = False,
        tolerance_s: float = EXACT_MATCH_TOLERANCE_S,
    ) -> None:
        self._units: List[DisplayUnit] = []
        self._times: List[float] = []
        self._by_text: Dict[str, List[DisplayUnit]] = {}
        self._listeners: List[AppendListener] = []
        self._lock = threading.Lock()
        self._strict = strict
        self._tolerance_s = tolerance_s

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, units: Iterable[DisplayUnit]) -> int:
        """Append units to the end of the timeline.

        WHY: Producers emit units in time order, so the common path is a
        plain list append that keeps the binary-search invariant for free.

        HOW: Under the lock, each unit is appended when its time_start is
        not earlier than the current tail. Otherwise the precondition was
        violated: the violation is logged and the unit is inserted at its
        sorted position (after any units with the same timestamp). Listeners
        are notified once the lock is released.

        RULES:
        - Returns the number of units added
        - strict=True raises InvariantViolation instead of inserting, after
          keeping the units that were already in order
        - Listeners see every unit that was kept, even when strict mode raises
        """
        batch = list(units)
        if not batch:
            return 0

        added: List[DisplayUnit] = []
        violation: Optional[InvariantViolation] = None
        with self._lock:
            for unit in batch:
                ts = unit.time_start
                if not self._times or ts >= self._times[-1]:
                    self._units.append(unit)
                    self._times.append(ts)
                else:
                    if self._strict:
                        violation = InvariantViolation(
                            "Unit at {:.3f}s appended after tail at {:.3f}s".format(
                                ts, self._times[-1]
                            )
                        )
                        break
                    logger.warning(
                        "Out-of-order append: unit %s at %.3fs is before tail at %.3fs; "
                        "inserting at sorted position",
                        unit.id, ts, self._times[-1],
                    )
                    index = bisect.bisect_right(self._times, ts)
                    self._units.insert(index, unit)
                    self._times.insert(index, ts)
                self._by_text.setdefault(unit.original_text, []).append(unit)
                added.append(unit)
            listeners = list(self._listeners)

        if added:
            for listener in listeners:
                listener(added)
        if violation is not None:
            raise violation
        return len(added)


    def apply_translations(self, translations: Mapping[str, str]) -> int:
        """Attach translations to every stored unit whose text matches.

        Args:
            translations: Original text → translated text.

        Returns:
            Number of units that received a translation.
        """
        updated = 0
        with self._lock:
            for text, translated in translations.items():
                for unit in self._by_text.get(text, ()):
                    if unit.attach_translation(translated):
                        updated += 1
        return updated

    def subscribe(self, listener: AppendListener) -> Callable[[], None]:
        """Register an append listener; returns a callable that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def query(self, time: float) -> List[DisplayUnit]:
        """Return the units to display at playback time `time`.

        WHY: Called once per rendered frame while playback moves forward
        and backward, so it must be a binary search, not a scan.

        HOW: bisect_right finds the bracketing pair (largest timestamp <=
        time, smallest timestamp > time). Either one within the tolerance
        is an exact match; otherwise the closer one wins and equal
        distances favour the earlier unit. The selected unit is widened to
        every neighbour with the same time_start.

        RULES:
        - Empty store → []
        - time before the first unit → first set; after the last → last set
        """
        with self._lock:
            if not self._units:
                return []
            index = self._select_index(time)
            return self._group_at(index)

    def units(self) -> List[DisplayUnit]:
        """Snapshot of all units in time order."""
        with self._lock:
            return list(self._units)

    def untranslated(self) -> List[DisplayUnit]:
        """Snapshot of units that still have no translation."""
        with self._lock:
            return [u for u in self._units if u.translated_text is None]

    def time_span(self) -> Optional[Tuple[float, float]]:
        """Return (first time_start, last time_start), or None when empty."""
        with self._lock:
            if not self._times:
                return None
            return self._times[0], self._times[-1]

    def tail(self) -> List[DisplayUnit]:
        """Units sharing the latest time_start; empty when the store is empty."""
        with self._lock:
            if not self._units:
                return []
            return self._group_at(len(self._units) - 1)


    def __len__(self) -> int:
        with self._lock:
            return len(self._units)

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _select_index(self, time: float) -> int:
        times = self._times
        upper = bisect.bisect_right(times, time)
        lower = upper - 1

        if lower >= 0 and abs(times[lower] - time) < self._tolerance_s:
            return lower
        if upper < len(times) and abs(times[upper] - time) < self._tolerance_s:
            return upper

        if upper == 0:
            return 0
        if upper == len(times):
            return len(times) - 1

        below = time - times[lower]
        above = times[upper] - time
        return lower if below <= above else upper

    def _group_at(self, index: int) -> List[DisplayUnit]:
        times = self._times
        ts = times[index]
        first = index
        while first > 0 and times[first - 1] == ts:
            first -= 1
        last = index
        while last + 1 < len(times) and times[last + 1] == ts:
            last += 1
        return self._units[first:last + 1]
