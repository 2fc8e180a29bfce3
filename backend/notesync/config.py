from __future__ import annotations

import os
from pathlib import Path

# backend/notesync/config.py -> repository_root/data
DEFAULT_DATA_DIR = Path(__file__).resolve().parents[2] / "data"

DEFAULT_API_URL = "http://localhost:8000"
DEFAULT_SYNC_INTERVAL_MS = 30_000


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def data_dir() -> Path:
    return Path(os.getenv("APP_DATA_DIR", str(DEFAULT_DATA_DIR)))


def jwt_secret() -> str:
    s = os.getenv("JWT_SECRET", "")
    if not s:
        # required in prod; tests set it through monkeypatch
        raise RuntimeError("JWT_SECRET is not set")
    return s


def jwt_algorithm() -> str:
    return os.getenv("JWT_ALGORITHM", "HS256")


def jwt_exp_minutes() -> int:
    return _int_env("JWT_EXP_MINUTES", 15)


def bcrypt_rounds() -> int | None:
    raw = os.getenv("BCRYPT_ROUNDS")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def log_level() -> str:
    return os.getenv("NOTESYNC_LOG_LEVEL", "INFO").upper()


def api_url() -> str:
    return os.getenv("NOTESYNC_API_URL", DEFAULT_API_URL).rstrip("/")


def sync_interval_ms() -> int:
    return _int_env("NOTESYNC_SYNC_INTERVAL_MS", DEFAULT_SYNC_INTERVAL_MS)


def http_timeout_seconds() -> float:
    try:
        return float(os.getenv("NOTESYNC_HTTP_TIMEOUT", "30"))
    except ValueError:
        return 30.0
