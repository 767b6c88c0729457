"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubemirror.models.config import LogConfig, MirrorConfig, TimingConfig


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEMIRROR_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _env_list(key: str) -> list[str]:
    return [item.strip() for item in _env(key).split(",") if item.strip()]


def _validate_api_server(value: str) -> str:
    if not value.startswith(("http://", "https://")):
        raise ValueError(f"Invalid API server URL: {value}. Must start with http:// or https://")
    return value.rstrip("/")


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> MirrorConfig:
    """Load configuration from KUBEMIRROR_* environment variables."""
    return MirrorConfig(
        api_server=_validate_api_server(_env("API_SERVER", "https://kubernetes.default.svc")),
        verify_tls=_env_bool("VERIFY_TLS", True),
        request_timeout=_env_float("REQUEST_TIMEOUT", 30.0, min_val=1.0),
        polling_only_kinds=_env_list("POLLING_ONLY_KINDS"),
        timing=TimingConfig(
            debounce_seconds=_env_int("DEBOUNCE_MS", 75, min_val=0, max_val=5_000) / 1000,
            stream_retry_delay=_env_float("STREAM_RETRY_DELAY", 5.0, min_val=0.0),
            stream_max_retries=_env_int("STREAM_MAX_RETRIES", 3, min_val=0, max_val=20),
            stream_min_uptime=_env_float("STREAM_MIN_UPTIME", 5.0, min_val=0.0),
            poll_interval=_env_float("POLL_INTERVAL", 5.0, min_val=0.1),
            poll_max_retries=_env_int("POLL_MAX_RETRIES", 3, min_val=0, max_val=20),
            fetch_retry_delay=_env_float("FETCH_RETRY_DELAY", 0.01, min_val=0.0),
            resolve_retry_delay=_env_float("RESOLVE_RETRY_DELAY", 0.5, min_val=0.0),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
