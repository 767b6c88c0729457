"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class TimingConfig:
    """Timers used by the cache and both transports.

    All durations are in seconds.
    """

    debounce_seconds: float = 0.075
    stream_retry_delay: float = 5.0
    stream_max_retries: int = 3
    stream_min_uptime: float = 5.0
    poll_interval: float = 5.0
    poll_max_retries: int = 3
    fetch_retry_delay: float = 0.01
    resolve_retry_delay: float = 0.5


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class MirrorConfig:
    """Top-level kubemirror configuration."""

    api_server: str = "https://kubernetes.default.svc"
    verify_tls: bool = True
    request_timeout: float = 30.0
    polling_only_kinds: list[str] = field(default_factory=list)
    timing: TimingConfig = field(default_factory=TimingConfig)
    log: LogConfig = field(default_factory=LogConfig)
