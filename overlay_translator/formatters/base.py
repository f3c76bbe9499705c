"""Abstract base formatter and output container.

WHY: A finished (or still running) session can be exported in several
shapes: the camelCase JSON test fixture, a human-readable timeline. The
CLI and the HTTP API pick formats by key, so every formatter must expose
the same interface.

HOW: BaseFormatter is an ABC with two requirements, a ``name`` property
and a ``format()`` method taking the store's units in time order.
FormatterOutput bundles a file suffix with its content and MIME type.

RULES:
- Subclasses MUST implement ``name`` (human-readable) and ``format()``
- ``format()`` returns a list of outputs; current formatters return one
- ``suffix`` starts with a hyphen, e.g. ``"-units.json"``
- The caller is responsible for prepending the source filename stem
- Formatters never mutate the units they are given
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Sequence

from overlay_translator.core.ir import DisplayUnit


@dataclass
class FormatterOutput:
    """One output file produced by a formatter.

    Attributes:
        suffix: File suffix appended to the source stem,
                e.g. ``"-units.json"`` → ``"lecture-units.json"``.
        content: The file content.
        media_type: MIME type for the content, e.g. ``"application/json"``.
    """

    suffix: str
    content: str
    media_type: str


class BaseFormatter(ABC):
    """Abstract base for all timeline exporters.

    To add a new output format:
    1. Create a new file in formatters/
    2. Subclass BaseFormatter
    3. Implement format() and name
    4. Register in FORMATTERS dict in formatters/__init__.py
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'JSON test fixture'."""

    @abstractmethod
    def format(
        self,
        units: Sequence[DisplayUnit],
        target_language: str = "",
    ) -> List[FormatterOutput]:
        """Convert a timeline into one or more output files.

        Args:
            units: Display units ordered by time_start (TimelineStore.units()).
            target_language: Language the translations were requested in.

        Returns:
            List of FormatterOutput objects.
        """
