"""
ParamGuard Archive Configuration

Settings come from, in increasing precedence:
- dataclass defaults
- a YAML file (optional ``paramguard:`` root section, ``${VAR}`` and
  ``${VAR:-default}`` substitution)
- ``PARAMGUARD_*`` environment variables

Example YAML config:

```yaml
paramguard:
  storage_backend: sqlite
  db_path: ${HOME}/.paramguard/archive.db
  retention_days: 30
  auto_remove: false
  keep_tombstones: true
  kdf_memory_cost: 65536
```
"""

import logging
import os
import re
from dataclasses import asdict, dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .crypto import KdfParams, PasswordCipher
from .lifecycle import LifecycleEngine
from .retention import RetentionSettings
from .store import InMemoryRecordStore, RecordStore, SQLiteRecordStore
from .sweep import PeriodicSweeper, SweepCoordinator
from ..utils.redaction import configure_logging

logger = logging.getLogger(__name__)


ENV_PREFIX = "PARAMGUARD"
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
STORAGE_BACKENDS = ("sqlite", "memory")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Configuration error."""
    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""

    def __init__(self, errors: List[str]):
        self.errors = errors
        super().__init__(f"Configuration validation failed: {'; '.join(errors)}")


@dataclass
class ArchiveConfig:
    """Archive engine configuration."""

    storage_backend: str = "sqlite"
    db_path: str = str(Path.home() / ".paramguard" / "archive.db")
    retention_days: float = 30.0
    auto_remove: bool = False
    keep_tombstones: bool = True
    kdf_time_cost: int = 3
    kdf_memory_cost: int = 65536
    kdf_parallelism: int = 4
    sweep_interval: int = 3600
    log_level: str = "INFO"

    def validate(self) -> None:
        errors = []
        if self.storage_backend not in STORAGE_BACKENDS:
            errors.append(f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}")
        if self.retention_days < 0:
            errors.append("retention_days must not be negative")
        if self.kdf_time_cost < 1:
            errors.append("kdf_time_cost must be at least 1")
        if self.kdf_parallelism < 1:
            errors.append("kdf_parallelism must be at least 1")
        if self.kdf_memory_cost < 8 * self.kdf_parallelism:
            errors.append("kdf_memory_cost must be at least 8 * kdf_parallelism KiB")
        if self.sweep_interval <= 0:
            errors.append("sweep_interval must be positive")
        if self.log_level.upper() not in LOG_LEVELS:
            errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        if errors:
            raise ConfigValidationError(errors)

    @property
    def kdf_params(self) -> KdfParams:
        return KdfParams(
            time_cost=self.kdf_time_cost,
            memory_cost=self.kdf_memory_cost,
            parallelism=self.kdf_parallelism,
        )

    @property
    def retention_settings(self) -> RetentionSettings:
        return RetentionSettings(
            retention_period=timedelta(days=self.retention_days),
            auto_remove=self.auto_remove,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArchiveConfig":
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ConfigValidationError([f"unknown setting: {name}" for name in unknown])

        values = {}
        for name, value in data.items():
            values[name] = _coerce(name, value, type(getattr(cls, name)))
        config = cls(**values)
        config.validate()
        return config

    @classmethod
    def from_env(cls, base: Optional["ArchiveConfig"] = None) -> "ArchiveConfig":
        """Overlay ``PARAMGUARD_<SETTING>`` variables onto ``base`` (or defaults)."""
        values = (base or cls()).to_dict()
        for name in values:
            raw = os.getenv(f"{ENV_PREFIX}_{name.upper()}")
            if raw is not None:
                values[name] = raw
        return cls.from_dict(values)


def _coerce(name: str, value: Any, target: type) -> Any:
    if target is bool:
        if isinstance(value, bool):
            return value
        return str(value).lower() in ("1", "true", "yes")
    try:
        return target(value)
    except (TypeError, ValueError):
        raise ConfigValidationError([f"{name}: expected {target.__name__}, got {value!r}"])


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute environment variables."""
    if isinstance(obj, str):
        def replace_var(match: re.Match) -> str:
            var_name = match.group(1)
            default = None

            # Support ${VAR:-default} syntax
            if ":-" in var_name:
                var_name, default = var_name.split(":-", 1)

            value = os.environ.get(var_name)
            if value is None:
                if default is not None:
                    return default
                logger.warning(f"Environment variable not set: {var_name}")
                return match.group(0)
            return value

        return ENV_VAR_PATTERN.sub(replace_var, obj)

    elif isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}

    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]

    return obj


def load_config(
    path: Optional[Union[str, Path]] = None,
    allow_env_override: bool = True,
) -> ArchiveConfig:
    """
    Load configuration from an optional YAML file plus the environment.

    Raises:
        ConfigError: file missing or not valid YAML
        ConfigValidationError: a setting is unknown or out of range
    """
    data: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        try:
            with open(path, "r") as f:
                raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML: {e}")

        raw_config = raw_config or {}
        if not isinstance(raw_config, dict):
            raise ConfigError("Configuration root must be a mapping")
        if "paramguard" in raw_config:
            raw_config = raw_config["paramguard"] or {}
        data = _substitute_env_vars(raw_config)

    config = ArchiveConfig.from_dict(data)
    if allow_env_override:
        config = ArchiveConfig.from_env(base=config)
    logger.debug(f"Loaded configuration: backend={config.storage_backend}")
    return config


def open_store(config: ArchiveConfig) -> RecordStore:
    if config.storage_backend == "memory":
        return InMemoryRecordStore()
    return SQLiteRecordStore(Path(config.db_path).expanduser())


def create_engine(config: Optional[ArchiveConfig] = None) -> LifecycleEngine:
    """Build a lifecycle engine wired according to ``config``."""
    config = config or get_config()
    configure_logging(config.log_level)
    return LifecycleEngine(
        store=open_store(config),
        cipher=PasswordCipher(config.kdf_params),
        keep_tombstones=config.keep_tombstones,
        default_settings=config.retention_settings,
    )


def create_sweeper(
    engine: LifecycleEngine,
    config: Optional[ArchiveConfig] = None,
) -> PeriodicSweeper:
    config = config or get_config()
    return PeriodicSweeper(SweepCoordinator(engine), interval=config.sweep_interval)


# Global config instance
_config: Optional[ArchiveConfig] = None


def get_config() -> ArchiveConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ArchiveConfig.from_env()
    return _config


def set_config(config: Optional[ArchiveConfig]) -> None:
    """Set (or with None, reset) the global configuration instance."""
    global _config
    _config = config
