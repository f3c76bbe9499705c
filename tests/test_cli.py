"""Tests for the command-line interface.

WHY: The CLI is the quickest way to turn a recorded recognition file into
a translated overlay timeline. Its exit codes, file naming and stdout
contract (--query JSON lines only) are what scripts depend on.

HOW: main() is called with an explicit argv list. Inputs are written to
pytest's tmp_path; the offline echo backend stands in for translation.
stdout and stderr are captured with capsys.

RULES:
- Every run passes --backend echo (no network)
- Status messages must go to stderr, never stdout
"""

from __future__ import annotations

import json

import pytest

from overlay_translator.cli import _parse_formats, _resolve_output_path, build_parser, main


def _write_recording(tmp_path, name="clip.json"):
    path = tmp_path / name
    path.write_text(json.dumps({
        "chunks": [
            {"fragments": [
                {"text": "Bonjour", "startOffset": 0.0, "duration": 0.5},
                {"text": "tout", "startOffset": 0.6, "duration": 0.3},
                {"text": "le", "startOffset": 0.95, "duration": 0.1},
                {"text": "monde", "startOffset": 1.1, "duration": 0.4},
            ]},
            {"fragments": [
                {"text": "Merci", "startOffset": 12.0, "duration": 0.5},
            ]},
        ],
    }, ensure_ascii=False), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# End-to-end runs
# ---------------------------------------------------------------------------


class TestMain:
    """main() with the echo backend."""

    def test_writes_all_formats(self, tmp_path, capsys):
        path = _write_recording(tmp_path)
        main([str(path), "--backend", "echo"])

        document = json.loads((tmp_path / "clip-units.json").read_text(encoding="utf-8"))
        assert document["unitCount"] == 2
        assert [u["translatedText"] for u in document["units"]] == [
            "Bonjour tout le monde (TR)", "Merci (TR)",
        ]
        timeline = (tmp_path / "clip-timeline.txt").read_text(encoding="utf-8")
        assert timeline.splitlines()[1] == "[00:12.000] Merci => Merci (TR)"

        captured = capsys.readouterr()
        assert captured.out == ""
        assert "Done! Saved 2 file(s)" in captured.err

    def test_query_prints_json_lines(self, tmp_path, capsys):
        path = _write_recording(tmp_path)
        main([str(path), "--backend", "echo", "--formats", "json_fixture",
              "--query", "0.2", "--query", "30"])

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 2
        first, second = (json.loads(line) for line in lines)
        assert first["time"] == 0.2
        assert [u["originalText"] for u in first["units"]] == ["Bonjour tout le monde"]
        assert [u["originalText"] for u in second["units"]] == ["Merci"]

    def test_frames_mode(self, tmp_path, capsys):
        path = tmp_path / "frames.json"
        path.write_text(json.dumps({"fragments": [
            {"text": "EXIT", "startOffset": 1.0, "duration": 0.33, "confidence": 0.8,
             "position": {"x": 0.1, "y": 0.1, "width": 0.2, "height": 0.05}},
            {"text": "blur", "startOffset": 1.0, "duration": 0.33, "confidence": 0.2},
        ]}), encoding="utf-8")

        main([str(path), "--backend", "echo", "--mode", "frames",
              "--formats", "json_fixture", "--query", "1.0"])

        result = json.loads(capsys.readouterr().out)
        assert [u["originalText"] for u in result["units"]] == ["EXIT"]
        assert result["units"][0]["position"]["width"] == 0.2

    def test_existing_output_is_not_overwritten(self, tmp_path):
        path = _write_recording(tmp_path)
        (tmp_path / "clip-units.json").write_text("keep me", encoding="utf-8")

        main([str(path), "--backend", "echo", "--formats", "json_fixture"])

        assert (tmp_path / "clip-units.json").read_text(encoding="utf-8") == "keep me"
        assert (tmp_path / "clip-units-2.json").exists()

    def test_output_dir(self, tmp_path):
        path = _write_recording(tmp_path)
        out = tmp_path / "out"
        out.mkdir()

        main([str(path), "--backend", "echo", "--formats", "plain_text", "--output-dir", str(out)])
        assert (out / "clip-timeline.txt").exists()


# ---------------------------------------------------------------------------
# Errors and exit codes
# ---------------------------------------------------------------------------


class TestErrors:
    """Exit code 1 with a message on stderr."""

    def test_missing_input_file(self, tmp_path, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main([str(tmp_path / "missing.json"), "--backend", "echo"])
        assert exc_info.value.code == 1
        assert "File not found" in capsys.readouterr().err

    def test_missing_output_dir(self, tmp_path, capsys):
        path = _write_recording(tmp_path)
        with pytest.raises(SystemExit) as exc_info:
            main([str(path), "--backend", "echo", "--output-dir", str(tmp_path / "nope")])
        assert exc_info.value.code == 1
        assert "Output directory does not exist" in capsys.readouterr().err

    def test_unknown_format(self, tmp_path, capsys):
        path = _write_recording(tmp_path)
        with pytest.raises(SystemExit) as exc_info:
            main([str(path), "--backend", "echo", "--formats", "srt"])
        assert exc_info.value.code == 1
        assert "Unknown format 'srt'" in capsys.readouterr().err

    def test_malformed_recording(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"fragments": [{"startOffset": 1.0}]}), encoding="utf-8")

        with pytest.raises(SystemExit) as exc_info:
            main([str(path), "--backend", "echo"])
        assert exc_info.value.code == 1
        assert "Error:" in capsys.readouterr().err
        assert not (tmp_path / "bad-units.json").exists()

    def test_fragment_past_duration_is_an_error(self, tmp_path, capsys):
        path = tmp_path / "late.json"
        path.write_text(json.dumps({"duration": 10.0, "fragments": [
            {"text": "late", "startOffset": 30.0, "duration": 0.5},
        ]}), encoding="utf-8")

        with pytest.raises(SystemExit) as exc_info:
            main([str(path), "--backend", "echo"])
        assert exc_info.value.code == 1
        assert "outside the media duration" in capsys.readouterr().err

    def test_http_backend_without_endpoint(self, tmp_path, capsys, monkeypatch):
        monkeypatch.delenv("TRANSLATION_BASE_URL", raising=False)
        path = _write_recording(tmp_path)
        with pytest.raises(SystemExit) as exc_info:
            main([str(path), "--backend", "http"])
        assert exc_info.value.code == 1
        assert "TRANSLATION_BASE_URL" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    """Parser and path helpers."""

    def test_parse_formats_default_is_all(self):
        assert _parse_formats(None) == ["json_fixture", "plain_text"]

    def test_parse_formats_strips_blanks(self):
        assert _parse_formats(" plain_text , ") == ["plain_text"]

    def test_resolve_output_path_counts_up(self, tmp_path):
        (tmp_path / "clip-units.json").touch()
        (tmp_path / "clip-units-2.json").touch()
        assert _resolve_output_path("clip", "-units.json", tmp_path).name == "clip-units-3.json"

    def test_parser_defaults(self):
        args = build_parser().parse_args(["clip.json"])
        assert args.mode == "speech"
        assert args.query is None
        assert args.verbose is False

    def test_parser_rejects_unknown_mode(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["clip.json", "--mode", "radio"])

    @pytest.mark.parametrize("value", ["0", "-10"])
    def test_parser_rejects_non_positive_chunk_duration(self, value, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["clip.json", "--chunk-duration", value])
        assert exc_info.value.code == 2
        assert "must be greater than 0" in capsys.readouterr().err

    def test_parser_rejects_negative_overlap(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["clip.json", "--overlap", "-1"])
        assert exc_info.value.code == 2
        assert "must not be negative" in capsys.readouterr().err

    def test_parser_accepts_zero_overlap(self):
        args = build_parser().parse_args(["clip.json", "--overlap", "0", "--chunk-duration", "30"])
        assert args.overlap == 0.0
        assert args.chunk_duration == 30.0
