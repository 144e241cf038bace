"""Configuration management for rs485lock."""

import tomllib
from pathlib import Path

import tomli_w
from pydantic import BaseModel, Field

from .constants import (
    BACKOFF_SPREAD,
    DEFAULT_CONFIG_PATH,
    DEFAULT_LOCK_DIR,
    DEFAULT_PREFIX,
    MAX_WAIT_SECONDS,
    MISSING_RECORD_RETRIES,
    POLL_INTERVAL_MS,
    STALE_CONFIRMATIONS,
)


class LockConfig(BaseModel):
    """Queue file location and acquire loop tuning."""

    lock_dir: Path = Field(default=DEFAULT_LOCK_DIR, description="Directory holding queue files")
    prefix: str = Field(default=DEFAULT_PREFIX, description="Queue file name prefix")
    wait_seconds: int = Field(
        default=0,
        ge=0,
        le=MAX_WAIT_SECONDS,
        description="Time to wait for the bus (0 = fail at once if busy)",
    )
    stale_confirmations: int = Field(
        default=STALE_CONFIRMATIONS,
        ge=2,
        description="Consecutive stale sightings of a head before clearing it",
    )
    missing_record_retries: int = Field(
        default=MISSING_RECORD_RETRIES,
        ge=0,
        description="Unreadable head reads tolerated before re-enqueueing",
    )
    poll_interval_ms: int = Field(default=POLL_INTERVAL_MS, gt=0)
    backoff_spread: int = Field(default=BACKOFF_SPREAD, ge=1)


class LoggingConfig(BaseModel):
    """Configuration for log destinations."""

    syslog: bool = False  # Also send warnings and errors to syslog
    syslog_address: str = "/dev/log"


class Rs485LockConfig(BaseModel):
    """Root configuration for rs485lock."""

    lock: LockConfig = Field(default_factory=LockConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Path = DEFAULT_CONFIG_PATH) -> Rs485LockConfig:
    """Load config from a TOML file.

    Args:
        config_path: Path to the config file

    Returns:
        Loaded configuration, or defaults if the file doesn't exist
    """
    if not config_path.exists():
        return Rs485LockConfig()
    with open(config_path, "rb") as f:
        data = tomllib.load(f)
    return Rs485LockConfig.model_validate(data)


def write_config_template(config_path: Path = DEFAULT_CONFIG_PATH) -> Path:
    """Write default config template.

    Args:
        config_path: Where to write the config file

    Returns:
        Path to the written config file
    """
    template = {
        "lock": {
            "lock_dir": str(DEFAULT_LOCK_DIR),
            "prefix": DEFAULT_PREFIX,
            "wait_seconds": 0,
            "stale_confirmations": STALE_CONFIRMATIONS,
            "missing_record_retries": MISSING_RECORD_RETRIES,
            "poll_interval_ms": POLL_INTERVAL_MS,
            "backoff_spread": BACKOFF_SPREAD,
        },
        "logging": {"syslog": False, "syslog_address": "/dev/log"},
    }
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "wb") as f:
        tomli_w.dump(template, f)
    return config_path


# Active configuration (set by cli.py main callback)
_config: Rs485LockConfig | None = None


def get_active_config() -> Rs485LockConfig:
    """Get the configuration loaded by the CLI, or defaults."""
    if _config is None:
        return Rs485LockConfig()
    return _config


def set_active_config(config: Rs485LockConfig) -> None:
    """Set the active configuration. Called by CLI main callback."""
    global _config
    _config = config
