"""Configuration management for navireader."""

import os
from dataclasses import dataclass
from pathlib import Path

APP_NAME = "navireader"


@dataclass
class FetchConfig:
    """Configuration for feed fetching."""

    concurrency: int = 5
    timeout: float = 30.0
    user_agent: str = "NaviReader/0.1"


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value < minimum:
        raise ValueError(f"{name} must be at least {minimum}, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def resolve_data_dir() -> Path:
    """Locate the data root.

    ``NAVIREADER_DATA_DIR`` wins, then ``$XDG_DATA_HOME/navireader``, then
    ``~/.local/share/navireader``.
    """
    override = os.getenv("NAVIREADER_DATA_DIR")
    if override:
        return Path(override).expanduser()

    xdg_data_home = os.getenv("XDG_DATA_HOME")
    if xdg_data_home:
        return Path(xdg_data_home).expanduser() / APP_NAME

    return Path.home() / ".local" / "share" / APP_NAME


class Config:
    """Main configuration manager."""

    DEFAULT_NOTES_DIR = "~/zet"

    def __init__(self):
        """Initialize configuration from environment variables.

        Raises:
            ValueError: If a numeric variable is malformed
        """
        self.data_dir = resolve_data_dir()
        self.notes_dir = Path(
            os.getenv("NAVIREADER_NOTES_DIR", self.DEFAULT_NOTES_DIR)
        ).expanduser()
        self.concurrency = _env_int("NAVIREADER_CONCURRENCY", FetchConfig.concurrency)
        self.fetch_timeout = _env_float("NAVIREADER_FETCH_TIMEOUT", FetchConfig.timeout)
        self.user_agent = os.getenv("NAVIREADER_USER_AGENT", FetchConfig.user_agent)
        self.log_level = os.getenv("LOG_LEVEL", "WARNING")

    def get_fetch_config(self) -> FetchConfig:
        """Get fetch configuration."""
        return FetchConfig(
            concurrency=self.concurrency,
            timeout=self.fetch_timeout,
            user_agent=self.user_agent,
        )
