"""
Config Manager

Loads the operator configuration from YAML (with include support), applies
environment and command-line overrides and builds a validated OperatorConfig.
"""

from __future__ import annotations

import os
import yaml
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from models.config import (
    ApiConfig,
    LeaderElectionConfig,
    LoggingConfig,
    OperatorConfig,
    parse_duration,
)
from models.enums import LogLevel
from models.errors import ConfigValidationError
from utils.enum_helper import EnumHelper
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.CONFIG)

SRC_DIR = Path(__file__).parent.parent

# Environment variables set through the downward API of the pod spec
ENV_NAMESPACE = "POD_NAMESPACE"
ENV_POD_NAME = "POD_NAME"

_LOG_LEVEL_ALIASES = {"warning": LogLevel.WARN, "err": LogLevel.ERROR}


class ConfigManager:
    """
    Operator configuration loader with include system support

    Loads operator.yaml and processes the include: directive to merge modular
    YAML files. Falls back to factory defaults if the main file can't be read.

    Precedence (lowest → highest): YAML file, environment, CLI overrides.

    Example:
        manager = ConfigManager("config/operator.yaml")
        manager.load()
        config = manager.build(overrides={"namespace": "prod"})
    """

    def __init__(
        self,
        config_path: str = "config/operator.yaml",
        defaults_path: str = "config/factory_defaults.yaml",
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize ConfigManager

        Args:
            config_path: Path to operator.yaml (relative paths resolve against src/)
            defaults_path: Path to factory defaults fallback
            environ: Environment mapping (defaults to os.environ)
        """
        self.config_path = self._resolve(config_path)
        self.factory_defaults_path = self._resolve(defaults_path)
        self.environ = os.environ if environ is None else environ
        self.data: Dict[str, Any] = {}

    @staticmethod
    def _resolve(path: str) -> Path:
        p = Path(path)
        return p if p.is_absolute() else SRC_DIR / p

    # =========================================================================
    # Loading
    # =========================================================================

    def load(self) -> Dict[str, Any]:
        """
        Load YAML configuration with include system support

        Process:
        1. Load the main file
        2. If it has an 'include:' list, merge those files in order; the
           main file's own keys win
        3. Fallback to factory defaults on failure

        Raises:
            ConfigValidationError: neither file could be loaded

        Returns:
            Merged config data dict
        """
        try:
            main_config = self._read_yaml(self.config_path)

            includes = main_config.pop("include", None)
            if includes:
                log.info("Using include-based configuration", files=len(includes))
                merged = self._load_with_includes(includes, self.config_path.parent)
                self.data = self._merge(merged, main_config)
            else:
                log.info("Using monolithic configuration", path=str(self.config_path))
                self.data = main_config

        except (OSError, yaml.YAMLError, ConfigValidationError) as ex:
            log.error(
                f"Failed to load {self.config_path.name}",
                error=str(ex),
                error_type=type(ex).__name__,
            )
            log.warn("Falling back to factory defaults")
            try:
                self.data = self._read_yaml(self.factory_defaults_path)
            except (OSError, yaml.YAMLError) as fallback_ex:
                raise ConfigValidationError(
                    f"cannot load {self.config_path} nor factory defaults "
                    f"{self.factory_defaults_path}: {fallback_ex}"
                ) from fallback_ex

        return self.data

    def _read_yaml(self, path: Path) -> Dict[str, Any]:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigValidationError(f"{path.name}: top level must be a mapping")
        return data

    def _load_with_includes(self, include_list: List[str], config_dir: Path) -> Dict[str, Any]:
        """
        Load and merge multiple YAML files from include list

        Args:
            include_list: Filenames to load, later files win
            config_dir: Directory containing config files
        """
        merged: Dict[str, Any] = {}

        for filename in include_list:
            file_data = self._read_yaml(config_dir / filename)
            merged = self._merge(merged, file_data)
            log.info(f"Loaded {filename}", keys=str(list(file_data.keys())))

        return merged

    @classmethod
    def _merge(cls, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Recursive dict merge, `override` wins."""
        result = dict(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = cls._merge(result[key], value)
            else:
                result[key] = value
        return result

    # =========================================================================
    # Building
    # =========================================================================

    def build(self, overrides: Optional[Dict[str, Any]] = None) -> OperatorConfig:
        """
        Build and validate the OperatorConfig.

        Args:
            overrides: Values from the command line; None values are ignored.
                Keys: namespace, pod_name, identity, log_level

        Raises:
            ConfigValidationError: malformed or inconsistent configuration
        """
        data = dict(self.data)
        overrides = {k: v for k, v in (overrides or {}).items() if v is not None}

        namespace = overrides.get("namespace") or self.environ.get(ENV_NAMESPACE) or data.get("namespace", "default")
        pod_name = overrides.get("pod_name") or self.environ.get(ENV_POD_NAME) or data.get("pod_name", "")

        le = data.get("leader_election") or {}
        api = data.get("api") or {}
        logging_data = data.get("logging") or {}

        config = OperatorConfig(
            namespace=str(namespace),
            pod_name=str(pod_name or ""),
            identity=overrides.get("identity") or data.get("identity") or None,
            informers_resync=parse_duration(data.get("informers_resync", 30), "informers_resync"),
            workers_per_controller=self._int(data.get("workers_per_controller", 2), "workers_per_controller"),
            shutdown_grace_period=parse_duration(
                data.get("shutdown_grace_period", 30), "shutdown_grace_period"
            ),
            leader_election=LeaderElectionConfig(
                lease_name=str(le.get("lease_name", LeaderElectionConfig.lease_name)),
                lease_duration=parse_duration(le.get("lease_duration", 15), "leader_election.lease_duration"),
                renew_deadline=parse_duration(le.get("renew_deadline", 10), "leader_election.renew_deadline"),
                retry_period=parse_duration(le.get("retry_period", 2), "leader_election.retry_period"),
                release_on_cancel=bool(le.get("release_on_cancel", True)),
            ),
            api=ApiConfig(
                enabled=bool(api.get("enabled", False)),
                host=str(api.get("host", "0.0.0.0")),
                port=self._int(api.get("port", 8080), "api.port"),
            ),
            logging=LoggingConfig(
                level=self._log_level(overrides.get("log_level") or logging_data.get("level", "INFO")),
                colors=bool(logging_data.get("colors", True)),
            ),
        )
        config.validate()

        log.info(
            "Configuration loaded",
            namespace=config.namespace,
            pod=config.pod_name or "<unset>",
            lease=config.leader_election.lease_name,
        )
        return config

    @staticmethod
    def _int(value: Any, name: str) -> int:
        if isinstance(value, bool):
            raise ConfigValidationError(f"{name} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigValidationError(f"{name} must be an integer, got {value!r}") from None

    @staticmethod
    def _log_level(value: Any) -> LogLevel:
        if isinstance(value, LogLevel):
            return value
        try:
            return EnumHelper.from_string(LogLevel, str(value), aliases=_LOG_LEVEL_ALIASES)
        except ValueError as e:
            raise ConfigValidationError(f"logging.level: {e}") from None
