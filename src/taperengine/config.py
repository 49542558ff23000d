"""Taper tracker configuration loading and validation.

Reads a TOML file (``taper.toml``), resolves ``${VAR}`` environment
references, and returns a validated TaperConfig dataclass.
"""

from __future__ import annotations

import os
import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError

CONFIG_ENV_VAR = "TAPER_CONFIG"
DEFAULT_CONFIG_PATH = Path("~/.config/taperengine/taper.toml")
DEFAULT_STORE_PATH = Path("~/.local/share/taperengine/store.json")

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
_LOG_FORMATS = ("text", "json")


@dataclass
class LoggingConfig:
    """Logging configuration from the [logging] section."""

    level: str = "WARNING"
    format: str = "text"  # "text" or "json"


@dataclass
class StorageConfig:
    """Where the plan and journal are kept ([storage] section)."""

    path: Path = field(default_factory=lambda: DEFAULT_STORE_PATH.expanduser())


@dataclass
class LevelsConfig:
    """Body-load estimate settings ([levels] section)."""

    dt_h: float = 6.0
    absorption_rate_per_h: float = 1.0


@dataclass
class TaperConfig:
    """Parsed and validated configuration."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    levels: LevelsConfig = field(default_factory=LevelsConfig)
    source: Path | None = None


def resolve_env_vars(value: Any) -> Any:
    """Recursively replace ``${VAR}`` in strings with environment values.

    Raises
    ------
    ConfigError
        If a referenced variable is not set.
    """
    if isinstance(value, str):

        def _sub(match: re.Match[str]) -> str:
            name = match.group(1)
            env = os.environ.get(name)
            if env is None:
                raise ConfigError(f"Environment variable {name} referenced in config is not set")
            return env

        return _ENV_VAR_PATTERN.sub(_sub, value)
    if isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(v) for v in value]
    return value


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}] must be a table")
    return section


def _positive_float(section: dict[str, Any], key: str, default: float, where: str) -> float:
    raw = section.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or raw <= 0:
        raise ConfigError(f"{where}.{key} must be a positive number (got {raw!r})")
    return float(raw)


def load_config(path: Path | None = None) -> TaperConfig:
    """Load configuration.

    Parameters
    ----------
    path:
        Explicit config file. When omitted, ``$TAPER_CONFIG`` is used, then
        ``~/.config/taperengine/taper.toml``.

    Returns
    -------
    TaperConfig
        Defaults when no explicit file was requested and the default file
        does not exist.

    Raises
    ------
    ConfigError
        If an explicitly requested file is missing, the TOML is invalid, or a
        value fails validation.
    """
    explicit = path is not None or CONFIG_ENV_VAR in os.environ
    if path is None:
        path = Path(os.environ.get(CONFIG_ENV_VAR, str(DEFAULT_CONFIG_PATH)))
    path = Path(path).expanduser()

    if not path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return TaperConfig()

    try:
        data = tomllib.loads(path.read_bytes().decode())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc

    data = resolve_env_vars(data)

    # --- [logging] ---
    log_section = _section(data, "logging")
    level = str(log_section.get("level", LoggingConfig.level)).upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {', '.join(_LOG_LEVELS)} (got {level!r})")
    fmt = str(log_section.get("format", LoggingConfig.format)).lower()
    if fmt not in _LOG_FORMATS:
        raise ConfigError(f"logging.format must be 'text' or 'json' (got {fmt!r})")

    # --- [storage] ---
    storage_section = _section(data, "storage")
    store_path = storage_section.get("path")
    if store_path is not None and (not isinstance(store_path, str) or not store_path.strip()):
        raise ConfigError("storage.path must be a non-empty string when set")
    storage = StorageConfig(Path(store_path).expanduser()) if store_path else StorageConfig()

    # --- [levels] ---
    levels_section = _section(data, "levels")
    levels = LevelsConfig(
        dt_h=_positive_float(levels_section, "dt_h", LevelsConfig.dt_h, "levels"),
        absorption_rate_per_h=_positive_float(
            levels_section, "absorption_rate_per_h", LevelsConfig.absorption_rate_per_h, "levels"
        ),
    )

    return TaperConfig(
        logging=LoggingConfig(level=level, format=fmt),
        storage=storage,
        levels=levels,
        source=path,
    )
