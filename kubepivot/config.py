"""Configuration loading from environment variables."""

from __future__ import annotations

import os

import structlog

from kubepivot.models.config import KubePivotConfig, LogConfig, RepositoryConfig, WaitConfig

_log = structlog.get_logger(component="config")

# Read by the Machine creation fan-out on every call, not at startup.
MACHINE_READY_TIMEOUT_ENV = "CLUSTER_API_MACHINE_READY_TIMEOUT"


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEPIVOT_{key}", default)


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def machine_ready_timeout_override(default: float) -> float:
    """Return the Machine-ready timeout in seconds, honouring the minutes override.

    Invalid values are ignored and *default* is kept.
    """
    raw = os.environ.get(MACHINE_READY_TIMEOUT_ENV, "")
    if not raw:
        return default
    try:
        minutes = int(raw)
    except ValueError:
        _log.debug("machine_ready_timeout_ignored", value=raw)
        return default
    return minutes * 60.0


def load_config() -> KubePivotConfig:
    """Load configuration from KUBEPIVOT_* environment variables."""
    return KubePivotConfig(
        wait=WaitConfig(
            resource_ready_interval=_env_float("RESOURCE_READY_INTERVAL", 10.0, min_val=0.0),
            resource_ready_timeout=_env_float("RESOURCE_READY_TIMEOUT", 900.0, min_val=0.0),
            scale_interval=_env_float("SCALE_INTERVAL", 10.0, min_val=0.0),
            scale_timeout=_env_float("SCALE_TIMEOUT", 600.0, min_val=0.0),
            machine_ready_interval=_env_float("MACHINE_READY_INTERVAL", 10.0, min_val=0.0),
        ),
        repository=RepositoryConfig(
            path=_env("REPOSITORY_PATH", "~/.kubepivot/repository"),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
        ),
    )
