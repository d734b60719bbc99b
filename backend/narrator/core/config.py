"""
Runtime configuration for the narrator backend.

Values are read from the environment once at import time. Override any of
them with the matching NARRATOR_* variable before starting uvicorn.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Final

_BACKEND_DIR = Path(__file__).resolve().parents[2]


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw in (None, ""):
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


# "coqui" runs the local model; "openai" calls the hosted speech endpoint.
TTS_PROVIDER: Final[str] = os.environ.get("NARRATOR_TTS_PROVIDER", "coqui").lower()
OPENAI_API_KEY: Final[str] = os.environ.get("OPENAI_API_KEY", "")
OPENAI_TTS_MODEL: Final[str] = os.environ.get("NARRATOR_OPENAI_MODEL", "tts-1")
DEFAULT_VOICE: Final[str] = os.environ.get(
    "NARRATOR_VOICE", "nova" if TTS_PROVIDER == "openai" else "Baldur Sanjin"
)

CACHE_MAX_BYTES: Final[int] = _env_int("NARRATOR_CACHE_MAX_BYTES", 64 * 1024 * 1024)
CACHE_DB_PATH: Final[Path] = Path(
    os.environ.get("NARRATOR_CACHE_DB", str(_BACKEND_DIR / "narrator_cache.db"))
)
CACHE_PERSIST: Final[bool] = _env_bool("NARRATOR_CACHE_PERSIST", True)
CACHE_MAX_AGE_HOURS: Final[float] = _env_float("NARRATOR_CACHE_MAX_AGE_HOURS", 24 * 7)

SYNTH_TIMEOUT_S: Final[float] = _env_float("NARRATOR_SYNTH_TIMEOUT_S", 15.0)
SYNTH_MAX_RETRIES: Final[int] = _env_int("NARRATOR_SYNTH_MAX_RETRIES", 3)
SYNTH_BACKOFF_S: Final[float] = _env_float("NARRATOR_SYNTH_BACKOFF_S", 0.5)

# Bins per personality slider when building cache keys.
PERSONALITY_BINS: Final[int] = _env_int("NARRATOR_PERSONALITY_BINS", 5)
WARP_MULTIPLIER: Final[float] = _env_float("NARRATOR_WARP_MULTIPLIER", 2.0)
# 100 Mbit/s link; network byte rates are reported as a share of this.
NETWORK_CAPACITY_BPS: Final[float] = _env_float("NARRATOR_NETWORK_CAPACITY_BPS", 12_500_000.0)
RNG_SEED: Final[int] = _env_int("NARRATOR_RNG_SEED", 1337)

WARNING_COOLDOWN_S: Final[float] = _env_float("NARRATOR_WARNING_COOLDOWN_S", 30.0)
# Seconds between spoken system_status reports from telemetry; 0 disables them.
STATUS_INTERVAL_S: Final[float] = _env_float("NARRATOR_STATUS_INTERVAL_S", 300.0)
WARNING_THRESHOLDS: Final[dict[str, float]] = {
    "cpu": _env_float("NARRATOR_CPU_WARNING_THRESHOLD", 80.0),
    "memory": _env_float("NARRATOR_MEMORY_WARNING_THRESHOLD", 90.0),
    "disk": _env_float("NARRATOR_DISK_WARNING_THRESHOLD", 90.0),
    "network": _env_float("NARRATOR_NETWORK_WARNING_THRESHOLD", 90.0),
}

LOG_LEVEL: Final[str] = os.environ.get("NARRATOR_LOG_LEVEL", "INFO").upper()
