"""Deduplicated, cached, cancellable translation of display units.

WHY: Subtitles and on-screen text repeat constantly — the same caption is
detected in dozens of consecutive frames, the same phrase is spoken in two
overlapping audio windows. Translating each occurrence would multiply cost
and latency. Every distinct string should be requested exactly once per
session, and its translation should land on every unit carrying it.

HOW: TranslationCache is a lock-guarded, write-once mapping from original
to translated text. TranslationDispatcher.translate_batch() collects the
distinct texts of a batch that are not cached, sends them to the backend
in one call (or several calls of at most max_batch_size), caches what comes
back, and attaches it through the TimelineStore to every unit with that
text. The shared CancellationFlag is checked before collecting, at the
start of each loop iteration, and before each backend call.

RULES:
- One request per distinct original_text; correlation key = the text
- Cached texts are attached without a request (retries reuse earlier results)
- Missing responses leave units untranslated; that is a partial outcome
- A failed backend call raises TranslationError unmodified; texts it covered
  get nothing attached
- No lock is held while awaiting the backend
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from overlay_translator.config import DEFAULT_TARGET_LANGUAGE, TRANSLATION_BATCH_SIZE
from overlay_translator.core.cancellation import CancellationFlag
from overlay_translator.core.errors import TranslationError
from overlay_translator.core.ir import DisplayUnit
from overlay_translator.core.timeline import TimelineStore
from overlay_translator.translation.backend import TranslationBackend, TranslationRequest

logger = logging.getLogger(__name__)


class TranslationCache:
    """Write-once mapping from original text to translated text."""

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, text: str) -> Optional[str]:
        with self._lock:
            return self._entries.get(text)

    def put(self, text: str, translated: str) -> bool:
        """Store a translation unless the text is already cached.

        Returns:
            True if the entry was stored, False if one already existed.
        """
        with self._lock:
            if text in self._entries:
                return False
            self._entries[text] = translated
            return True

    def lookup(self, texts: Iterable[str]) -> Dict[str, str]:
        """Return the cached translations for whichever of `texts` are cached."""
        with self._lock:
            return {t: self._entries[t] for t in texts if t in self._entries}

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._entries)

    def __contains__(self, text: object) -> bool:
        with self._lock:
            return text in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass
class BatchReport:
    """Outcome of a successful translate_batch() call.

    RULES:
    - requested: distinct texts sent to the backend (0 when all were cached)
    - translated: texts that now have a translation (fresh or cached)
    - missing: requested texts the backend did not answer
    - units_updated: stored units that received a translation in this call
    """

    requested: int = 0
    translated: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    units_updated: int = 0

    @property
    def complete(self) -> bool:
        return not self.missing


class TranslationDispatcher:
    """Translate display units with one backend request per distinct string.

    WHY: Owns the session's translation cache and the policy around it —
    deduplication, batching, cancellation, and failure semantics — so the
    pipeline only has to hand over newly appended units.

    HOW: Holds the backend, the session's TimelineStore (translations are
    written through it, never onto private copies), a TranslationCache, and
    the shared CancellationFlag.

    RULES:
    - translate_batch() issues at most ceil(K / max_batch_size) backend calls
      for K uncached distinct texts (exactly one when max_batch_size is 0)
    - cancel() sets the shared flag; calls already in flight finish on their own
    - Errors are never retried internally
    """

    def __init__(
        self,
        backend: TranslationBackend,
        store: TimelineStore,
        target_language: str = DEFAULT_TARGET_LANGUAGE,
        cache: Optional[TranslationCache] = None,
        cancel_flag: Optional[CancellationFlag] = None,
        max_batch_size: int = TRANSLATION_BATCH_SIZE,
    ) -> None:
        self.backend = backend
        self.store = store
        self.target_language = target_language
        self.cache = cache if cache is not None else TranslationCache()
        self.cancel_flag = cancel_flag if cancel_flag is not None else CancellationFlag()
        self.max_batch_size = max_batch_size

    def cancel(self) -> None:
        self.cancel_flag.cancel()

    async def translate_batch(self, units: Iterable[DisplayUnit]) -> BatchReport:
        """Translate the distinct texts of `units` and attach the results.

        WHY: Called by the pipeline once per chunk with the units it just
        appended. Most of their texts are repeats, so the work is dominated
        by deduplication rather than by backend calls.

        HOW:
        1. Collect distinct, non-blank original texts in first-seen order,
           checking the cancel flag on every iteration.
        2. Attach cached translations for texts that are already known.
        3. Send the uncached texts to the backend, one request per text with
           the text as its key, in one call or max_batch_size slices.
        4. Cache each answered text and attach it through the store.

        RULES:
        - Raises CancellationError if the flag is observed before a request
        - Raises TranslationError if a backend call fails; slices answered
          before the failure stay cached and attached
        - Responses whose key was not requested are ignored

        Args:
            units: Display units already present in the TimelineStore.

        Returns:
            BatchReport describing what was requested and attached.
        """
        self.cancel_flag.raise_if_cancelled("collecting texts")

        distinct: List[str] = []
        seen = set()
        for unit in units:
            self.cancel_flag.raise_if_cancelled("collecting texts")
            text = unit.original_text
            if text in seen or not text.strip():
                continue
            seen.add(text)
            distinct.append(text)

        report = BatchReport()

        cached = self.cache.lookup(distinct)
        if cached:
            report.units_updated += self.store.apply_translations(cached)
            report.translated.extend(cached)

        pending = [text for text in distinct if text not in cached]
        report.requested = len(pending)
        if not pending:
            return report

        size = self.max_batch_size if self.max_batch_size > 0 else len(pending)
        for offset in range(0, len(pending), size):
            self.cancel_flag.raise_if_cancelled("translation request")
            texts = pending[offset:offset + size]
            fresh = await self._request(texts)
            if fresh:
                report.units_updated += self.store.apply_translations(fresh)
                report.translated.extend(fresh)
            report.missing.extend(t for t in texts if t not in fresh)

        if report.missing:
            logger.info(
                "Backend left %d of %d texts untranslated",
                len(report.missing), report.requested,
            )
        return report

    async def translate_one(self, text: str) -> str:
        """Translate a single string through the shared cache.

        WHY: Incremental callers (one phrase at a time, a UI retry button)
        need the cache and cancellation semantics without building a batch.

        HOW: Cache hit → return it. Otherwise check the cancel flag, send one
        request, cache the answer, and attach it to matching stored units.

        Raises:
            CancellationError: The flag was set before the request.
            TranslationError: The backend failed or returned no translation.
        """
        cached = self.cache.get(text)
        if cached is not None:
            return cached

        self.cancel_flag.raise_if_cancelled("translation request")
        fresh = await self._request([text])
        if text not in fresh:
            raise TranslationError("No translation returned for {!r}".format(text))

        self.store.apply_translations({text: fresh[text]})
        return fresh[text]

    async def _request(self, texts: List[str]) -> Dict[str, str]:
        """Send one backend call and cache the answers.

        Returns:
            Requested text → translation, for every text the backend answered.
            When a text was cached concurrently, the cached value wins.
        """
        requests = [TranslationRequest(text=t, key=t) for t in texts]
        logger.debug("Requesting %d translations into %s", len(requests), self.target_language)
        responses = await self.backend.translate(requests, self.target_language)

        wanted = set(texts)
        answered: Dict[str, str] = {}
        for response in responses:
            if response.key not in wanted:
                continue
            self.cache.put(response.key, response.translated_text)
            answered[response.key] = self.cache.get(response.key) or response.translated_text
        return answered
