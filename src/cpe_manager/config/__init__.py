"""Configuration loader for the CPE manager.

Loads settings from a YAML file with built-in defaults. Supports environment
variable overrides using the CPE_MANAGER_ prefix with double-underscore
nesting (e.g., CPE_MANAGER_MONITOR__SIGNAL__THRESHOLD_DBM=-25).
"""

from __future__ import annotations

import os
import pathlib
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Config sub-models
# ---------------------------------------------------------------------------

class _Section(BaseModel):
    # Env overrides arrive as numbers when they look numeric.
    model_config = ConfigDict(coerce_numbers_to_str=True)


class AcsConfig(_Section):
    url: str = "http://localhost:7557"
    username: str = "admin"
    password: str = "admin"
    request_timeout: float = 10.0


class SignalScanConfig(_Section):
    enabled: bool = True
    interval_seconds: int = 6 * 60 * 60
    threshold_dbm: float = -27.0


class LivenessScanConfig(_Section):
    enabled: bool = True
    interval_seconds: int = 12 * 60 * 60
    threshold_hours: float = 24.0


class MonitorConfig(_Section):
    startup_delay_seconds: int = 300
    signal: SignalScanConfig = Field(default_factory=SignalScanConfig)
    liveness: LivenessScanConfig = Field(default_factory=LivenessScanConfig)


class LogMethodConfig(_Section):
    enabled: bool = True
    min_priority: str = "low"


class WebhookMethodConfig(_Section):
    enabled: bool = False
    url: str = ""
    min_priority: str = "medium"


class NotificationsConfig(_Section):
    log: LogMethodConfig = Field(default_factory=LogMethodConfig)
    webhook: WebhookMethodConfig = Field(default_factory=WebhookMethodConfig)


class SubscribersConfig(_Section):
    enabled: bool = False
    url: str = ""
    token: str = ""


class LoggingConfig(_Section):
    level: str = "INFO"


# ---------------------------------------------------------------------------
# Top-level settings
# ---------------------------------------------------------------------------

class Settings(BaseModel):
    acs: AcsConfig = Field(default_factory=AcsConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    subscribers: SubscribersConfig = Field(default_factory=SubscribersConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Deep merge helper
# ---------------------------------------------------------------------------

def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge *override* into *base*, returning a new dict."""
    merged = dict(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------

_ENV_PREFIX = "CPE_MANAGER_"


def _coerce(value: str) -> Any:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _collect_env_overrides() -> dict[str, Any]:
    """Collect CPE_MANAGER_* env vars and build a nested dict.

    Double-underscore separates nesting levels.
    Example: CPE_MANAGER_ACS__URL=http://acs:7557
    becomes  {"acs": {"url": "http://acs:7557"}}
    """
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(_ENV_PREFIX):
            continue
        parts = key[len(_ENV_PREFIX) :].lower().split("__")
        current = overrides
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        current[parts[-1]] = _coerce(value)
    return overrides


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

_BUILTIN_DEFAULTS_PATH = pathlib.Path(__file__).resolve().parents[3] / "config" / "defaults.yaml"


def load_settings(
    config_path: pathlib.Path | None = None,
) -> Settings:
    """Load settings with layered precedence: defaults < file < env vars.

    Parameters
    ----------
    config_path:
        Path to a YAML config file. If ``None`` or the file does not exist,
        built-in defaults are used.
    """
    base: dict[str, Any] = {}

    path = config_path if config_path is not None else _BUILTIN_DEFAULTS_PATH
    if path.exists():
        with open(path) as fh:
            file_data = yaml.safe_load(fh)
        if isinstance(file_data, dict):
            base = _deep_merge(base, file_data)

    env_overrides = _collect_env_overrides()
    if env_overrides:
        base = _deep_merge(base, env_overrides)

    return Settings(**base)
