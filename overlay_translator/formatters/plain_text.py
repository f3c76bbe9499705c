"""Plain text timeline listing: one line per display unit.

WHY: Reviewers checking a translation run want to scan originals and
translations side by side with their timestamps, without opening JSON.

HOW: Walks the units in timeline order and writes
"[mm:ss.mmm] original => translation". Units still waiting for (or
missing) a translation show the original on both sides, which is what the
overlay would render.

RULES:
- One line per unit, no blank lines, trailing newline when non-empty
- Timestamps use minutes (unbounded) and milliseconds: [75:03.250]
- Untranslated units fall back to the original text
- Output suffix: "-timeline.txt"
- Media type: "text/plain"
"""

from __future__ import annotations

from typing import List, Sequence

from overlay_translator.core.ir import DisplayUnit
from overlay_translator.formatters.base import BaseFormatter, FormatterOutput


def format_timestamp(seconds: float) -> str:
    """Format seconds as mm:ss.mmm (minutes are not wrapped into hours)."""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    minutes, rest_ms = divmod(total_ms, 60_000)
    secs, ms = divmod(rest_ms, 1000)
    return "{:02d}:{:02d}.{:03d}".format(minutes, secs, ms)


class PlainTextFormatter(BaseFormatter):
    """Formatter that lists every unit with its timestamp and translation."""

    @property
    def name(self) -> str:
        return "Plain Text Timeline"

    def format(
        self,
        units: Sequence[DisplayUnit],
        target_language: str = "",
    ) -> List[FormatterOutput]:
        lines = [
            "[{}] {} => {}".format(
                format_timestamp(unit.time_start),
                unit.original_text,
                unit.display_text,
            )
            for unit in units
        ]

        content = "\n".join(lines)
        if content:
            content += "\n"

        return [
            FormatterOutput(
                suffix="-timeline.txt",
                content=content,
                media_type="text/plain",
            )
        ]
