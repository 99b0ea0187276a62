from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .github import GITHUB_API
from .models import Account

CONFIG_DIR = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "prsync"
CONFIG_PATH = CONFIG_DIR / "config.json"

TOKEN_ENV_VAR = "GITHUB_TOKEN"


@dataclass
class AppConfig:
    auth_token: str | None = None
    login: str = ""
    endpoint: str = GITHUB_API
    database_path: str | None = None
    log_level: str = "WARNING"

    @staticmethod
    def from_dict(data: dict[str, Any]) -> AppConfig:
        """Create an `AppConfig` instance from a plain dictionary.

        Args:
            data: A mapping parsed from JSON containing optional keys
                `auth_token`, `login`, `endpoint`, `database_path` and
                `log_level`.

        Returns:
            A populated `AppConfig` object.
        """
        return AppConfig(
            auth_token=data.get("auth_token"),
            login=data.get("login") or "",
            endpoint=data.get("endpoint") or GITHUB_API,
            database_path=data.get("database_path"),
            log_level=str(data.get("log_level") or "WARNING").upper(),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize this configuration to a JSON-safe dictionary."""
        return {
            "auth_token": self.auth_token,
            "login": self.login,
            "endpoint": self.endpoint,
            **({"database_path": self.database_path} if self.database_path else {}),
            "log_level": self.log_level,
        }

    def resolved_database_path(self) -> Path:
        """Return the cache database path, defaulting to one inside `CONFIG_DIR`."""
        if self.database_path:
            return Path(self.database_path).expanduser()
        return CONFIG_DIR / "cache.sqlite3"

    def account(self) -> Account:
        return Account(login=self.login, endpoint=self.endpoint, token=self.auth_token)


def ensure_config_dir() -> None:
    """Ensure the configuration directory exists.

    Raises:
        OSError: If the directory cannot be created.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def load_config() -> AppConfig:
    """Load configuration from `CONFIG_PATH`, creating a default if missing.

    The `GITHUB_TOKEN` environment variable, when set, takes precedence over
    the stored token. It is never written back to disk.

    Returns:
        The loaded or newly created `AppConfig` instance.

    Raises:
        OSError: If reading the file fails.
        json.JSONDecodeError: If the file exists but contains invalid JSON.
    """
    ensure_config_dir()
    if not CONFIG_PATH.exists():
        cfg = AppConfig()
        save_config(cfg)
    else:
        with CONFIG_PATH.open("r", encoding="utf-8") as f:
            cfg = AppConfig.from_dict(json.load(f))
    env_token = os.environ.get(TOKEN_ENV_VAR)
    if env_token:
        cfg.auth_token = env_token
    return cfg


def save_config(cfg: AppConfig) -> None:
    """Persist configuration to `CONFIG_PATH` as JSON.

    Args:
        cfg: The configuration to save.

    Raises:
        OSError: If writing the file fails.
    """
    ensure_config_dir()
    with CONFIG_PATH.open("w", encoding="utf-8") as f:
        json.dump(cfg.to_dict(), f, indent=2)
