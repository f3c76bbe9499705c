"""Output formatter registry — pluggable format hub.

WHY: The CLI and the API need a single lookup to find the right exporter
by name. A central dict makes it trivial to add new formats: create the
formatter class, import it here, add one line.

HOW: FORMATTERS maps string keys to formatter *classes* (not instances).
Callers instantiate as needed: ``formatter = FORMATTERS["json_fixture"]()``.

RULES:
- Keys are snake_case identifiers (used in CLI flags and API paths)
- Values are BaseFormatter subclasses (not instances)
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Type

from overlay_translator.formatters.json_fixture import JsonFixtureFormatter
from overlay_translator.formatters.plain_text import PlainTextFormatter

if TYPE_CHECKING:
    from overlay_translator.formatters.base import BaseFormatter

FORMATTERS: Dict[str, Type[BaseFormatter]] = {
    "json_fixture": JsonFixtureFormatter,
    "plain_text": PlainTextFormatter,
}
