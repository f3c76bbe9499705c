"""Cooperative cancellation flag shared by one processing session.

WHY: The session driver, the segmenter's caller loop, and the translation
dispatcher all need to stop issuing new work once the user cancels, while
letting an in-flight backend call finish on its own. A single flag owned by
the session and handed down explicitly keeps that decision in one place.

HOW: Wraps a threading.Event so the flag can be set from any thread (a UI
thread, a FastAPI worker) and read from the asyncio task doing the work.

RULES:
- Setting the flag never interrupts running work; it is checked at loop
  boundaries and before each backend request
- raise_if_cancelled() raises CancellationError once the flag is set
- The flag is one-way for a session: there is no reset
"""

from __future__ import annotations

import threading

from overlay_translator.core.errors import CancellationError


class CancellationFlag:
    """A one-way, thread-safe cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, where: str = "") -> None:
        """Raise CancellationError if the flag has been set.

        Args:
            where: Optional label for the checkpoint, included in the message.
        """
        if self._event.is_set():
            if where:
                raise CancellationError("Cancelled before {}".format(where))
            raise CancellationError("Cancelled")
