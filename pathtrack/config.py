from __future__ import annotations

import os
from dataclasses import dataclass, field

from pathtrack.infrastructure import DEFAULT_API_BASE, DEFAULT_MODEL


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass(slots=True)
class Settings:
    api_base: str = DEFAULT_API_BASE
    api_key: str | None = None
    model: str = DEFAULT_MODEL
    timeout: float = 30.0
    poll_interval: float = 5.0
    poll_max_attempts: int = 60
    playback_interval: float = 1.0
    n_results: int = 10
    accession_prefixes: tuple[str, ...] = ("NZ_",)
    enable_contains_match: bool = False
    cors_origins: tuple[str, ...] = field(
        default_factory=lambda: ("http://localhost:3000", "http://127.0.0.1:3000")
    )
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            api_base=os.getenv("PATHTRACK_API_BASE") or defaults.api_base,
            api_key=os.getenv("PATHTRACK_API_KEY") or None,
            model=os.getenv("PATHTRACK_MODEL") or defaults.model,
            timeout=_env_float("PATHTRACK_TIMEOUT", defaults.timeout),
            poll_interval=_env_float("PATHTRACK_POLL_INTERVAL", defaults.poll_interval),
            poll_max_attempts=_env_int("PATHTRACK_POLL_MAX_ATTEMPTS", defaults.poll_max_attempts),
            playback_interval=_env_float("PATHTRACK_PLAYBACK_INTERVAL", defaults.playback_interval),
            n_results=_env_int("PATHTRACK_N_RESULTS", defaults.n_results),
            accession_prefixes=_env_list("PATHTRACK_ACCESSION_PREFIXES", defaults.accession_prefixes),
            enable_contains_match=_env_bool("PATHTRACK_ENABLE_CONTAINS_MATCH"),
            cors_origins=_env_list("API_CORS_ORIGINS", ()) or defaults.cors_origins,
            log_level=(os.getenv("PATHTRACK_LOG_LEVEL") or defaults.log_level).upper(),
        )
