"""Command-line interface for the overlay translator.

WHY: Recognition output captured from a video (speech words or per-frame
text detections) should be turned into a translated overlay timeline
without standing up the HTTP API. The CLI wires the whole pipeline behind
one command: load the recognition JSON, segment, store, translate, export,
and optionally answer playback-time queries.

HOW: Uses argparse for the input file, mode, language, backend and
windowing options. Runs the async SessionPipeline via asyncio.run().
Status messages go to stderr; exported files are saved next to the input
(or to --output-dir); --query results are printed to stdout as JSON so
they can be piped.

RULES:
- Positional argument: recognition JSON file ("chunks" or "fragments" document)
- --formats: comma-separated formatter keys (default: all registered)
- Output naming: {stem}{suffix}, numeric suffix for conflicts (-units-2.json)
- Status output goes to stderr (not stdout)
- Translation failures are reported but do not fail the run
- Exit code 1 on input, configuration, or recognition errors; 130 on Ctrl-C
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from overlay_translator.config import (
    CHUNK_DURATION_S,
    CHUNK_OVERLAP_S,
    DEFAULT_TARGET_LANGUAGE,
    MAX_PHRASE_DURATION_S,
    TRANSLATION_BACKEND,
    TRANSLATION_BACKENDS,
)
from overlay_translator.core.errors import RecognitionError
from overlay_translator.core.timeline import TimelineStore
from overlay_translator.formatters import FORMATTERS
from overlay_translator.formatters.base import FormatterOutput
from overlay_translator.pipeline import SessionPipeline
from overlay_translator.recognition.source import RECOGNITION_MODES, JsonRecognitionSource
from overlay_translator.translation.backend import build_backend
from overlay_translator.translation.dispatcher import TranslationDispatcher


def _status(msg: str) -> None:
    """Print a status message to stderr.

    WHY: Status output must not pollute stdout so --query output can be piped.
    """
    print(msg, file=sys.stderr, flush=True)


def _resolve_output_path(
    stem: str,
    suffix: str,
    output_dir: Path,
) -> Path:
    """Resolve the output file path, adding numeric suffix on conflict.

    WHY: Users may run the translator several times on the same input.
    Overwriting previous output would lose work.

    HOW: Check if {stem}{suffix} exists. If so, increment a counter
    and insert it before the file extension until a free name is found.

    RULES:
    - First attempt: {stem}{suffix} (e.g. lecture-units.json)
    - Conflict: counter inserted before the extension (lecture-units-2.json)
    - Counter starts at 2 and increments

    Args:
        stem: Input filename stem (without extension).
        suffix: Formatter's suffix (e.g. "-units.json").
        output_dir: Directory to save the output file.

    Returns:
        A Path that does not yet exist.
    """
    base_path = output_dir / "{}{}".format(stem, suffix)
    if not base_path.exists():
        return base_path

    dot_idx = suffix.rfind(".")
    if dot_idx > 0:
        suffix_name = suffix[:dot_idx]
        suffix_ext = suffix[dot_idx:]
    else:
        suffix_name = suffix
        suffix_ext = ""

    counter = 2
    while True:
        candidate = output_dir / "{}{}-{}{}".format(stem, suffix_name, counter, suffix_ext)
        if not candidate.exists():
            return candidate
        counter += 1


def _save_output(
    output: FormatterOutput,
    stem: str,
    output_dir: Path,
) -> Path:
    """Save a single formatter output to disk and return its path."""
    path = _resolve_output_path(stem, output.suffix, output_dir)
    path.write_text(output.content, encoding="utf-8")
    return path


def _parse_formats(formats: Optional[str]) -> List[str]:
    """Validate --formats and return formatter keys.

    Raises:
        ValueError: A key is not in FORMATTERS.
    """
    if not formats:
        return list(FORMATTERS.keys())

    keys = [f.strip() for f in formats.split(",") if f.strip()]
    for key in keys:
        if key not in FORMATTERS:
            available = ", ".join(sorted(FORMATTERS.keys()))
            raise ValueError("Unknown format '{}'. Available formats: {}".format(key, available))
    return keys


def _positive_float(value: str) -> float:
    """argparse type for strictly positive seconds."""
    number = float(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0, got {}".format(value))
    return number


def _non_negative_float(value: str) -> float:
    """argparse type for seconds that may be 0."""
    number = float(value)
    if number < 0:
        raise argparse.ArgumentTypeError("must not be negative, got {}".format(value))
    return number


async def _run_pipeline(args: argparse.Namespace) -> int:
    """Execute one session end to end.

    HOW: Validates paths and formats, builds the backend and dispatcher,
    runs the SessionPipeline over the JSON source, then exports and
    answers queries from the finished TimelineStore.

    Returns:
        Process exit code.
    """
    input_path = Path(args.input_file).resolve()
    if not input_path.is_file():
        _status("Error: File not found: {}".format(input_path))
        return 1

    output_dir = Path(args.output_dir).resolve() if args.output_dir else input_path.parent
    if not output_dir.is_dir():
        _status("Error: Output directory does not exist: {}".format(output_dir))
        return 1

    try:
        format_keys = _parse_formats(args.formats)
        backend = build_backend(args.backend)
    except ValueError as e:
        _status("Error: {}".format(e))
        return 1

    source = JsonRecognitionSource(
        input_path,
        chunk_duration=args.chunk_duration,
        overlap=args.overlap,
    )
    store = TimelineStore()

    try:
        async with backend:
            dispatcher = TranslationDispatcher(
                backend,
                store,
                target_language=args.target_language,
            )
            pipeline = SessionPipeline(
                source,
                store,
                dispatcher=dispatcher,
                mode=args.mode,
                max_phrase_duration=args.max_phrase_duration,
                on_status=_status,
            )
            summary = await pipeline.run()
    except RecognitionError as e:
        _status("Error: {}".format(e))
        return 1

    units = store.units()
    translated = sum(1 for u in units if u.is_translated)
    _status("  {} units, {} translated, {} failed translation batches".format(
        len(units), translated, summary.translation_failures,
    ))

    stem = input_path.stem
    saved_files: List[Path] = []
    if format_keys:
        _status("Formatting output...")
    for key in format_keys:
        formatter = FORMATTERS[key]()
        for output in formatter.format(units, args.target_language):
            saved_path = _save_output(output, stem, output_dir)
            saved_files.append(saved_path)
            _status("  Saved: {}".format(saved_path.name))

    for query_time in args.query or []:
        result = {
            "time": query_time,
            "units": [u.to_dict() for u in store.query(query_time)],
        }
        print(json.dumps(result, ensure_ascii=False))

    _status("")
    _status("Done! Saved {} file(s) to {}".format(len(saved_files), output_dir))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    RULES:
    - Positional: input_file (required)
    - Optional: --mode, --target-language, --backend, --max-phrase-duration
    - Optional: --chunk-duration, --overlap (for flat "fragments" documents)
    - --chunk-duration must be > 0 and --overlap >= 0 (0 means touching windows)
    - Optional: --formats (comma-separated), --output-dir
    - Optional: --query (repeatable), --verbose
    """
    parser = argparse.ArgumentParser(
        prog="overlay_translator",
        description="Segment timed recognition output, translate it, and build "
                    "a time-indexed overlay timeline.",
    )

    parser.add_argument(
        "input_file",
        help="Path to a recognition JSON file ('chunks' or 'fragments').",
    )

    parser.add_argument(
        "--mode",
        choices=RECOGNITION_MODES,
        default="speech",
        help="Recognition variant the fragments came from (default: %(default)s).",
    )

    parser.add_argument(
        "--target-language",
        default=DEFAULT_TARGET_LANGUAGE,
        help="Target language code for translations (default: %(default)s).",
    )

    parser.add_argument(
        "--backend",
        choices=TRANSLATION_BACKENDS,
        default=TRANSLATION_BACKEND,
        help="Translation backend (default: %(default)s).",
    )

    parser.add_argument(
        "--max-phrase-duration",
        type=float,
        default=MAX_PHRASE_DURATION_S,
        help="Maximum phrase span in seconds (default: %(default)s).",
    )

    parser.add_argument(
        "--chunk-duration",
        type=_positive_float,
        default=CHUNK_DURATION_S,
        help="Window length for flat fragment documents (default: %(default)s).",
    )

    parser.add_argument(
        "--overlap",
        type=_non_negative_float,
        default=CHUNK_OVERLAP_S,
        help="Overlap between consecutive windows (default: %(default)s).",
    )

    parser.add_argument(
        "--formats",
        default=None,
        help="Comma-separated list of output formats. "
             "Available: {}. Default: all.".format(", ".join(sorted(FORMATTERS.keys()))),
    )

    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to save output files (default: same as input file).",
    )

    parser.add_argument(
        "--query",
        type=float,
        action="append",
        default=None,
        metavar="SECONDS",
        help="Print the units displayed at this playback time. Can be repeated.",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    - Exits with the pipeline's exit code when it is non-zero
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        code = asyncio.run(_run_pipeline(args))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
