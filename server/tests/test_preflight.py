from __future__ import annotations

from pathlib import Path

import pytest

import preflight


def test_invalid_voicevox_base_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VOICEVOX_BASE", "localhost:50021")
    report = preflight.Report()

    preflight.check_voicevox(report)

    assert report.has_failures
    assert "VOICEVOX_BASE" in report.failures[0]


def test_missing_voicevox_base_falls_back_to_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VOICEVOX_BASE", raising=False)
    monkeypatch.delenv("VOICEVOX_DEFAULT_SPEAKER", raising=False)
    monkeypatch.delenv("VOICEVOX_REQUEST_TIMEOUT_SECONDS", raising=False)
    report = preflight.Report()

    assert preflight.check_voicevox(report) == preflight.DEFAULT_VOICEVOX_BASE
    assert not report.has_failures
    assert report.warnings


def test_missing_ffmpeg_fails(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("FFMPEG_PATH", str(tmp_path / "nope" / "ffmpeg"))
    report = preflight.Report()

    preflight.check_ffmpeg(report)

    assert report.has_failures
    assert "ffmpeg not found" in report.failures[0]


def test_odd_video_width_fails(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RENDER_VIDEO_WIDTH", "1279")
    monkeypatch.setenv("RENDER_WORK_ROOT", str(tmp_path))
    report = preflight.Report()

    preflight.check_render_settings(report)

    assert any("RENDER_VIDEO_WIDTH" in message for message in report.failures)


def test_main_exit_code_reflects_failures(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("FFMPEG_PATH", str(tmp_path / "missing-ffmpeg"))

    assert preflight.main([]) == 1
    assert "[FAIL]" in capsys.readouterr().out


def test_unset_voicevox_base_still_checks_speaker_and_timeout(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("VOICEVOX_BASE", raising=False)
    monkeypatch.setenv("VOICEVOX_DEFAULT_SPEAKER", "zundamon")
    monkeypatch.setenv("VOICEVOX_REQUEST_TIMEOUT_SECONDS", "soon")
    report = preflight.Report()

    preflight.check_voicevox(report)

    assert any("VOICEVOX_DEFAULT_SPEAKER" in message for message in report.warnings)
    assert any("VOICEVOX_REQUEST_TIMEOUT_SECONDS" in message for message in report.failures)
