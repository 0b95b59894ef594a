"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class WaitConfig:
    """Intervals and deadlines (seconds) for the bounded poll loops."""

    resource_ready_interval: float = 10.0
    resource_ready_timeout: float = 15 * 60.0
    scale_interval: float = 10.0
    scale_timeout: float = 10 * 60.0
    machine_ready_interval: float = 10.0
    machine_ready_timeout: float = 30 * 60.0


@dataclass
class RepositoryConfig:
    """Local provider repository configuration."""

    path: str = "~/.kubepivot/repository"


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"


@dataclass
class KubePivotConfig:
    """Top-level kubepivot configuration."""

    wait: WaitConfig = field(default_factory=WaitConfig)
    repository: RepositoryConfig = field(default_factory=RepositoryConfig)
    log: LogConfig = field(default_factory=LogConfig)
