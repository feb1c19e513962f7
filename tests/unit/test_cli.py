"""Unit tests for the castwright Typer CLI."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from typer.testing import CliRunner

from castwright import __version__
from castwright.cli import app

if TYPE_CHECKING:
    from pathlib import Path

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("CASTWRIGHT_"):
            monkeypatch.delenv(key)


class TestVersion:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestGenerate:
    def test_offline_text(self, tmp_path: Path) -> None:
        out = tmp_path / "out"
        result = runner.invoke(
            app,
            [
                "generate",
                "Short sentence one. Short sentence two.",
                "--text",
                "--offline",
                "--chapters",
                "-o",
                str(out),
            ],
        )
        assert result.exit_code == 0, result.output
        assert "Podcast saved" in result.output
        assert len(list(out.glob("*.mp3"))) == 1
        assert len(list(out.glob("*.txt"))) == 1
        assert len(list(out.glob("*.json"))) == 1

    def test_text_and_file_are_exclusive(self) -> None:
        result = runner.invoke(app, ["generate", "x", "--text", "--file", "--offline"])
        assert result.exit_code == 2

    def test_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["generate", str(tmp_path / "absent.pdf"), "--file", "--offline"]
        )
        assert result.exit_code == 2

    def test_pipeline_error_exits_one(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app, ["generate", "   ", "--text", "--offline", "-o", str(tmp_path)]
        )
        assert result.exit_code == 1
        assert "ingest" in result.output

    def test_format_mismatch_fails_delivery(self, tmp_path: Path) -> None:
        result = runner.invoke(
            app,
            [
                "generate",
                "Some text here.",
                "--text",
                "--offline",
                "-f",
                "wav",
                "-o",
                str(tmp_path),
            ],
        )
        assert result.exit_code == 1
        assert "deliver" in result.output

    def test_missing_credentials(self, tmp_path: Path) -> None:
        result = runner.invoke(app, ["generate", "Some text.", "--text", "-o", str(tmp_path)])
        assert result.exit_code == 1
        assert "CASTWRIGHT_CREDENTIALS__" in result.output

    def test_invalid_config(self, tmp_path: Path) -> None:
        config = tmp_path / "bad.yaml"
        config.write_text("retry:\n  max_retries: 99\n", encoding="utf-8")
        result = runner.invoke(
            app, ["generate", "Some text.", "--text", "--offline", "-c", str(config)]
        )
        assert result.exit_code == 1
        assert "max_retries" in result.output


class TestVoices:
    def test_offline_listing(self) -> None:
        result = runner.invoke(app, ["voices", "--offline"])
        assert result.exit_code == 0
        assert "Aria" in result.output
        assert "fake-voice-1" in result.output

    def test_needs_key_without_offline(self) -> None:
        result = runner.invoke(app, ["voices"])
        assert result.exit_code == 1


class TestCheck:
    def test_reports_missing(self) -> None:
        result = runner.invoke(app, ["check"])
        assert result.exit_code == 1
        assert "MISSING" in result.output

    def test_all_present(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in ("GEMINI_API_KEY", "CLAUDE_API_KEY", "ELEVENLABS_API_KEY"):
            monkeypatch.setenv(f"CASTWRIGHT_CREDENTIALS__{name}", "set")
        result = runner.invoke(app, ["check"])
        assert result.exit_code == 0
        assert "MISSING" not in result.output
