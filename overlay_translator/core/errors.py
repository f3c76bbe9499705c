"""Error taxonomy shared by the recognition, timeline, and translation stages.

WHY: Each failure class has a different recovery policy. A recognition
failure ends the session, a translation failure only leaves some units
untranslated, and cancellation is not a failure at all. Typed exceptions
let callers branch on the policy instead of parsing messages.

HOW: Plain exception subclasses. TranslationError optionally carries the
HTTP status code of the backend response that caused it.

RULES:
- RecognitionError: fatal to the current session, always propagated
- TranslationError: batch-scoped and recoverable, never retried internally
- CancellationError: raised when the shared flag is observed; callers end quietly
- InvariantViolation: out-of-order timeline append; only raised in strict mode
"""

from __future__ import annotations

from typing import Optional


class RecognitionError(Exception):
    """Raised by a recognition source that cannot deliver the next chunk."""


class TranslationError(Exception):
    """Raised when a translation backend call fails for a whole batch.

    WHY: The dispatcher surfaces backend failures unmodified so the caller
    can retry the batch or carry on with untranslated units.

    HOW: Wraps an optional HTTP status code and a message.

    RULES:
    - status_code is None for transport errors and non-HTTP backends
    - message is always human-readable
    """

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        self.message = message
        if status_code is not None:
            super().__init__("Translation backend error {}: {}".format(status_code, message))
        else:
            super().__init__(message)


class CancellationError(Exception):
    """Raised when an operation observes the session's cancellation flag."""


class InvariantViolation(RuntimeError):
    """Raised in strict mode when a unit is appended before the timeline's tail."""
