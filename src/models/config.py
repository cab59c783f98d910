"""
Configuration models

Plain dataclasses filled by ConfigManager from YAML, environment and CLI
flags. validate() enforces the timing relations the lease manager relies on.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Optional, Union

from models.enums import LogLevel
from models.errors import ConfigValidationError

# Jitter applied to the candidate retry period (same factor as client-go)
JITTER_FACTOR = 1.2

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0, None: 1.0}


def parse_duration(value: Union[str, int, float], name: str = "duration") -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) or strings such as "15s", "500ms", "1m".
    """
    if isinstance(value, bool):
        raise ConfigValidationError(f"{name} must be a duration, got {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _DURATION_RE.match(value)
        if match:
            return float(match.group(1)) * _DURATION_UNITS[match.group(2)]
    raise ConfigValidationError(f"{name} must be a duration, got {value!r}")


@dataclass
class LeaderElectionConfig:
    lease_name: str = "mysql-operator-titanium"
    lease_duration: float = 15.0
    renew_deadline: float = 10.0
    retry_period: float = 2.0
    release_on_cancel: bool = True
    jitter_factor: float = JITTER_FACTOR

    def validate(self) -> None:
        if not self.lease_name:
            raise ConfigValidationError("leader_election.lease_name must not be empty")
        if self.renew_deadline <= 0:
            raise ConfigValidationError("leader_election.renew_deadline must be greater than zero")
        if self.lease_duration <= self.renew_deadline:
            raise ConfigValidationError(
                "leader_election.lease_duration must be greater than renew_deadline"
            )
        if self.retry_period <= 0:
            raise ConfigValidationError("leader_election.retry_period must be greater than zero")
        if self.jitter_factor < 0:
            raise ConfigValidationError("leader_election.jitter_factor must not be negative")
        if self.renew_deadline <= self.jitter_factor * self.retry_period:
            raise ConfigValidationError(
                "leader_election.renew_deadline must be greater than "
                f"jitter_factor * retry_period ({self.jitter_factor} * {self.retry_period})"
            )


@dataclass
class ApiConfig:
    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8080

    def validate(self) -> None:
        if not 0 < self.port < 65536:
            raise ConfigValidationError(f"api.port out of range: {self.port}")


@dataclass
class LoggingConfig:
    level: LogLevel = LogLevel.INFO
    colors: bool = True


@dataclass
class OperatorConfig:
    """
    Complete operator configuration.

    Example:
        config = OperatorConfig(namespace="default", pod_name="operator-0")
        config.validate()
        config.leader_election.lease_duration  # 15.0
    """
    namespace: str = "default"
    pod_name: str = ""
    identity: Optional[str] = None
    informers_resync: float = 30.0
    workers_per_controller: int = 2
    shutdown_grace_period: float = 30.0
    leader_election: LeaderElectionConfig = field(default_factory=LeaderElectionConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        if not self.namespace:
            raise ConfigValidationError("namespace must not be empty")
        if self.identity is not None and not self.identity:
            raise ConfigValidationError("identity must not be empty when set")
        if self.informers_resync < 0:
            raise ConfigValidationError("informers_resync must not be negative")
        if self.workers_per_controller < 1:
            raise ConfigValidationError("workers_per_controller must be at least 1")
        if self.shutdown_grace_period < 0:
            raise ConfigValidationError("shutdown_grace_period must not be negative")
        self.leader_election.validate()
        self.api.validate()
