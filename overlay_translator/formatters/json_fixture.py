"""JSON test-fixture exporter for a translated timeline.

WHY: Regression tests and the overlay front end replay sessions from a
stable JSON shape. The shape is the camelCase serialization of
DisplayUnit, wrapped with the target language so a fixture knows what
its translations are in.

HOW: Serializes every unit with DisplayUnit.to_dict() in timeline order
and dumps the document with indent=2 and ensure_ascii=False so non-Latin
originals stay readable.

RULES:
- Top level: {"targetLanguage": str, "unitCount": int, "units": [...]}
- Each unit validates against schemas/display_unit.schema.json
- Optional unit fields (translatedText, timeEnd, position) are omitted when unset
- Output suffix: "-units.json"
- Media type: "application/json"
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from overlay_translator.core.ir import DisplayUnit
from overlay_translator.formatters.base import BaseFormatter, FormatterOutput


def load_fixture(content: str) -> List[DisplayUnit]:
    """Parse a document written by JsonFixtureFormatter back into units."""
    data = json.loads(content)
    return [DisplayUnit.from_dict(item) for item in data.get("units", [])]


class JsonFixtureFormatter(BaseFormatter):
    """Formatter that writes the camelCase display-unit fixture."""

    @property
    def name(self) -> str:
        return "JSON Fixture"

    def format(
        self,
        units: Sequence[DisplayUnit],
        target_language: str = "",
    ) -> List[FormatterOutput]:
        document: Dict[str, Any] = {
            "targetLanguage": target_language,
            "unitCount": len(units),
            "units": [unit.to_dict() for unit in units],
        }
        content = json.dumps(document, indent=2, ensure_ascii=False)

        return [
            FormatterOutput(
                suffix="-units.json",
                content=content,
                media_type="application/json",
            )
        ]
