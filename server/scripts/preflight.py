"""Preflight checks for the stillcast render service.

Run this before starting the API to catch common misconfiguration:
  python scripts/preflight.py

Optional network checks against the VOICEVOX engine:
  python scripts/preflight.py --check-http
"""

from __future__ import annotations

import argparse
import os
import shutil
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import httpx
from dotenv import load_dotenv


DEFAULT_VOICEVOX_BASE = "http://127.0.0.1:50021"


@dataclass
class Report:
    passed: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    failures: list[str] = field(default_factory=list)

    def ok(self, message: str) -> None:
        self.passed.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def fail(self, message: str) -> None:
        self.failures.append(message)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)


def _load_environment() -> None:
    """Load local env files in precedence order without overwriting existing vars."""
    server_dir = Path(__file__).resolve().parent.parent
    repo_dir = server_dir.parent
    for env_file in (server_dir / ".env.local", server_dir / ".env", repo_dir / ".env"):
        if env_file.exists():
            load_dotenv(env_file, override=False)


def _is_valid_http_url(value: str) -> bool:
    """Return True when value is an absolute HTTP(S) URL."""
    parsed = urlparse((value or "").strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _env_float(name: str, default: float, report: Report, *, minimum: float = 0.0) -> float:
    """Parse float env var and emit validation failures into the report."""
    raw = os.getenv(name, str(default)).strip()
    try:
        value = float(raw)
    except ValueError:
        report.fail(f"{name} must be a number. Got: {raw!r}")
        return default
    if value < minimum:
        report.fail(f"{name} must be >= {minimum}. Got: {value}")
    return value


def check_voicevox(report: Report) -> str:
    """Validate the synthesis backend location and return it."""
    base = (os.getenv("VOICEVOX_BASE") or "").strip()
    if not base:
        report.warn(f"VOICEVOX_BASE not set; using {DEFAULT_VOICEVOX_BASE}.")
        base = DEFAULT_VOICEVOX_BASE
    elif not _is_valid_http_url(base):
        report.fail(f"VOICEVOX_BASE is not a valid HTTP(S) URL: {base!r}")
    else:
        report.ok(f"VOICEVOX_BASE={base}")

    speaker = (os.getenv("VOICEVOX_DEFAULT_SPEAKER") or "3").strip()
    if not speaker.isdigit():
        report.warn(f"VOICEVOX_DEFAULT_SPEAKER is usually a numeric style id. Got: {speaker!r}")
    _env_float("VOICEVOX_REQUEST_TIMEOUT_SECONDS", 30, report, minimum=0.1)
    return base


def check_ffmpeg(report: Report) -> None:
    """Verify the encoder binary exists and can write H.264."""
    ffmpeg = (os.getenv("FFMPEG_PATH") or "ffmpeg").strip()
    resolved = shutil.which(ffmpeg)
    if resolved is None:
        report.fail(f"ffmpeg not found ({ffmpeg!r}). Install it or set FFMPEG_PATH.")
        return
    report.ok(f"ffmpeg resolved to {resolved}")

    try:
        completed = subprocess.run(
            [resolved, "-hide_banner", "-encoders"],
            capture_output=True,
            text=True,
            check=False,
            timeout=15,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        report.fail(f"Could not list ffmpeg encoders: {exc}")
        return
    if "libx264" not in completed.stdout:
        report.fail("ffmpeg build has no libx264 encoder; renders will fail.")
    else:
        report.ok("libx264 encoder available.")


def check_render_settings(report: Report) -> None:
    """Validate render tuning knobs and the scratch directory."""
    width_raw = os.getenv("RENDER_VIDEO_WIDTH", "1280").strip()
    try:
        width = int(width_raw)
    except ValueError:
        report.fail(f"RENDER_VIDEO_WIDTH must be an integer. Got: {width_raw!r}")
    else:
        if width <= 0 or width % 2:
            report.fail(f"RENDER_VIDEO_WIDTH must be a positive even number. Got: {width}")

    timeout = _env_float("RENDER_ENCODER_TIMEOUT_SECONDS", 300, report)
    if timeout == 0:
        report.warn("RENDER_ENCODER_TIMEOUT_SECONDS=0 disables the encoder deadline.")
    _env_float("IMAGE_FETCH_TIMEOUT_SECONDS", 20, report, minimum=0.1)

    work_root = Path((os.getenv("RENDER_WORK_ROOT") or "").strip() or tempfile.gettempdir())
    if not work_root.exists():
        report.warn(f"RENDER_WORK_ROOT {work_root} does not exist yet; it will be created on first render.")
    elif not os.access(work_root, os.W_OK):
        report.fail(f"RENDER_WORK_ROOT {work_root} is not writable.")
    else:
        report.ok(f"RENDER_WORK_ROOT={work_root}")


def check_http_health(report: Report, *, base_url: str, timeout_seconds: float) -> None:
    """Check the VOICEVOX engine's /version endpoint."""
    url = f"{base_url.rstrip('/')}/version"
    try:
        with httpx.Client(timeout=timeout_seconds, follow_redirects=True) as client:
            response = client.get(url)
    except Exception as exc:
        report.fail(f"VOICEVOX not reachable at {url} ({exc}).")
        return
    if response.status_code >= 400:
        report.fail(f"VOICEVOX responded with HTTP {response.status_code} at {url}.")
        return
    report.ok(f"VOICEVOX reachable (version {response.text.strip() or 'unknown'}).")


def print_report(report: Report) -> None:
    """Render a human-readable summary report to stdout."""
    for message in report.passed:
        print(f"[PASS] {message}")
    for message in report.warnings:
        print(f"[WARN] {message}")
    for message in report.failures:
        print(f"[FAIL] {message}")
    print(
        f"\nSummary: {len(report.passed)} passed, {len(report.warnings)} warnings, {len(report.failures)} failures."
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for optional network checks and their timeout."""
    parser = argparse.ArgumentParser(description="stillcast preflight checks")
    parser.add_argument(
        "--check-http",
        action="store_true",
        help="Contact the VOICEVOX engine before booting the service.",
    )
    parser.add_argument(
        "--http-timeout",
        type=float,
        default=3.0,
        help="Timeout (seconds) for preflight HTTP checks (default: 3.0).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run preflight suite and return process exit code."""
    args = parse_args(argv)
    _load_environment()
    report = Report()

    base_url = check_voicevox(report)
    check_ffmpeg(report)
    check_render_settings(report)
    if args.check_http:
        check_http_health(report, base_url=base_url, timeout_seconds=max(args.http_timeout, 0.1))

    print_report(report)
    return 1 if report.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())
