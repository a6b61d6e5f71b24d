"""stillcast: narrated still-image video rendering service."""
from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

__version__ = "0.1.0"

_SERVER_DIR = Path(__file__).resolve().parent.parent
_REPO_DIR = _SERVER_DIR.parent


def _load_env_files() -> None:
    # Later files win: repo .env < server/.env < server/.env.local.
    load_dotenv(_REPO_DIR / ".env")
    load_dotenv(_SERVER_DIR / ".env")
    load_dotenv(_SERVER_DIR / ".env.local", override=True)


_load_env_files()
