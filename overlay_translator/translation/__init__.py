"""Translation package — backends, cache, and the deduplicating dispatcher.

WHY: Translation is the only stage that waits on an external service and
the only one that can partially fail. Keeping it behind one package makes
the failure and cancellation policy explicit.

HOW: backend.py defines the TranslationBackend contract and the offline
echo backend, http_backend.py talks to a LibreTranslate-style service over
httpx, dispatcher.py deduplicates, caches, and writes results back through
the TimelineStore.

RULES:
- All backend calls go through TranslationDispatcher
- Backends raise TranslationError; the dispatcher never retries
"""

from overlay_translator.translation.backend import (
    EchoTranslationBackend,
    TranslationBackend,
    TranslationRequest,
    TranslationResponse,
    build_backend,
)
from overlay_translator.translation.dispatcher import (
    BatchReport,
    TranslationCache,
    TranslationDispatcher,
)

__all__ = [
    "BatchReport",
    "EchoTranslationBackend",
    "TranslationBackend",
    "TranslationCache",
    "TranslationDispatcher",
    "TranslationRequest",
    "TranslationResponse",
    "build_backend",
]
