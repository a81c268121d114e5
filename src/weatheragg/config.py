"""Aggregator and client configuration for weatheragg."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from weatheragg._constants import (
    DEFAULT_HOST,
    DEFAULT_PORT,
    EXPIRY_SECONDS,
    MAX_ATTEMPTS,
    MAX_STORED_STATIONS,
    PRODUCER_RETRY_DELAY_SECONDS,
    READER_RETRY_DELAY_SECONDS,
    REQUEST_TIMEOUT_SECONDS,
    SOCKET_TIMEOUT_SECONDS,
    STORAGE_FILE,
    SWEEP_INTERVAL_SECONDS,
    WORKER_POOL_SIZE,
)
from weatheragg.exceptions import WeatherConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, convert: type[int] | type[float]) -> int | float | None:
    raw = os.environ.get(env_key)
    if raw is None:
        return None
    try:
        return convert(raw)
    except ValueError as exc:
        raise WeatherConfigError(f"{env_key} must be a number, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class AggregatorConfig:
    """Aggregation server configuration.

    Parameters
    ----------
    host : str
        Interface to bind the listening socket to.
    port : int
        TCP port. ``0`` lets the OS pick a free port.
    storage_path : Path
        Primary storage file. The temporary file used for atomic saves is
        created next to it.
    capacity : int
        Maximum number of stations kept; the oldest by logical time is
        evicted when exceeded.
    expiry_seconds : float
        Stations with no PUT for this long are removed.
    sweep_interval : float
        Seconds between background expiry sweeps.
    socket_timeout : float
        Per-connection read timeout in seconds.
    max_workers : int
        Number of connections handled concurrently.
    resume_clock : bool
        Advance the logical clock past the largest persisted timestamp at
        startup instead of restarting it from zero.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    storage_path: Path = Path(STORAGE_FILE)
    capacity: int = MAX_STORED_STATIONS
    expiry_seconds: float = EXPIRY_SECONDS
    sweep_interval: float = SWEEP_INTERVAL_SECONDS
    socket_timeout: float = SOCKET_TIMEOUT_SECONDS
    max_workers: int = WORKER_POOL_SIZE
    resume_clock: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise WeatherConfigError(f"port must be between 0 and 65535, got {self.port}")
        if self.capacity < 1:
            raise WeatherConfigError(f"capacity must be positive, got {self.capacity}")
        if self.max_workers < 1:
            raise WeatherConfigError(f"max_workers must be positive, got {self.max_workers}")
        for name in ("expiry_seconds", "sweep_interval", "socket_timeout"):
            if getattr(self, name) <= 0:
                raise WeatherConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if not isinstance(self.storage_path, Path):
            object.__setattr__(self, "storage_path", Path(self.storage_path))

    @classmethod
    def from_env(cls, **overrides: Any) -> AggregatorConfig:
        """Create configuration from ``WEATHERAGG_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        host = env.get("WEATHERAGG_HOST")
        if host is not None:
            config_kwargs["host"] = host
        storage = env.get("WEATHERAGG_STORAGE_PATH")
        if storage is not None:
            config_kwargs["storage_path"] = Path(storage)

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "WEATHERAGG_PORT": ("port", int),
            "WEATHERAGG_CAPACITY": ("capacity", int),
            "WEATHERAGG_EXPIRY_SECONDS": ("expiry_seconds", float),
            "WEATHERAGG_SWEEP_INTERVAL": ("sweep_interval", float),
            "WEATHERAGG_SOCKET_TIMEOUT": ("socket_timeout", float),
            "WEATHERAGG_MAX_WORKERS": ("max_workers", int),
        }
        for env_key, (field_name, convert) in _ENV_NUMERIC_MAP.items():
            if field_name in overrides:
                continue
            value = _env_number(env_key, convert)
            if value is not None:
                config_kwargs[field_name] = value

        if "resume_clock" not in overrides:
            config_kwargs["resume_clock"] = _env_bool(env.get("WEATHERAGG_RESUME_CLOCK"), False)

        config_kwargs.update(overrides)
        return cls(**config_kwargs)


@dataclasses.dataclass(frozen=True)
class ClientConfig:
    """Configuration shared by the content server and GET client.

    Parameters
    ----------
    server_url : str
        Aggregator base URL, e.g. ``http://localhost:4567``. A bare
        ``host:port`` is accepted and gets ``http://`` prepended.
    max_attempts : int
        Total attempts per request, counting the first one.
    retry_delay : float
        Fixed delay in seconds between attempts.
    request_timeout : float
        Total timeout for a single attempt.
    """

    server_url: str
    max_attempts: int = MAX_ATTEMPTS
    retry_delay: float = READER_RETRY_DELAY_SECONDS
    request_timeout: float = REQUEST_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        url = self.server_url.strip().rstrip("/")
        if not url:
            raise WeatherConfigError("server_url must be non-empty")
        if "://" not in url:
            url = f"http://{url}"
        object.__setattr__(self, "server_url", url)
        if self.max_attempts < 1:
            raise WeatherConfigError(f"max_attempts must be at least 1, got {self.max_attempts}")
        if self.retry_delay < 0:
            raise WeatherConfigError(f"retry_delay must not be negative, got {self.retry_delay}")
        if self.request_timeout <= 0:
            raise WeatherConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    @classmethod
    def for_producer(cls, server_url: str, **overrides: Any) -> ClientConfig:
        """Configuration with the content server's longer retry delay."""
        overrides.setdefault("retry_delay", PRODUCER_RETRY_DELAY_SECONDS)
        return cls(server_url=server_url, **overrides)

    @classmethod
    def from_env(cls, **overrides: Any) -> ClientConfig:
        """Create configuration from ``WEATHERAGG_*`` environment variables.

        Reads ``WEATHERAGG_SERVER_URL`` plus optional retry settings.
        Explicit keyword arguments override environment values.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        url = env.get("WEATHERAGG_SERVER_URL")
        if url is not None:
            config_kwargs["server_url"] = url

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "WEATHERAGG_MAX_ATTEMPTS": ("max_attempts", int),
            "WEATHERAGG_RETRY_DELAY": ("retry_delay", float),
            "WEATHERAGG_REQUEST_TIMEOUT": ("request_timeout", float),
        }
        for env_key, (field_name, convert) in _ENV_NUMERIC_MAP.items():
            if field_name in overrides:
                continue
            value = _env_number(env_key, convert)
            if value is not None:
                config_kwargs[field_name] = value

        config_kwargs.update(overrides)
        if "server_url" not in config_kwargs:
            raise WeatherConfigError("WEATHERAGG_SERVER_URL is not set")
        return cls(**config_kwargs)
