"""Gateway configuration loader.

Each setting is resolved in order: environment variable, then the value in
``config.json``, then a hardcoded default. The config file location can be
overridden with ``GIT_CONFIG_FILE``.
"""

import json
import os
from pathlib import Path

from pydantic import BaseModel

SERVICE_NAME = "git-repo-gateway"
SERVICE_VERSION = "0.1.0"

# Setting name -> environment variable
ENV_VARS = {
    "repo_dir": "GIT_REPO_DIR",
    "log_file": "GIT_LOG_FILE",
    "port": "GIT_REPO_PORT",
    "log_level": "GIT_LOG_LEVEL",
    "host": "GIT_REPO_HOST",
}


def _get_backend_dir() -> Path:
    """Get the backend directory (where main.py lives)."""
    return Path(__file__).resolve().parents[1]


def default_config_file() -> Path:
    """Get the config file path, honoring GIT_CONFIG_FILE."""
    override = os.getenv("GIT_CONFIG_FILE")
    if override:
        return Path(override)
    return _get_backend_dir() / "config.json"


class Settings(BaseModel):
    """Runtime settings for the gateway."""

    repo_dir: Path
    log_file: Path
    port: int = 80
    log_level: str = "info"
    host: str = "0.0.0.0"

    @classmethod
    def defaults(cls) -> dict:
        backend_dir = _get_backend_dir()
        return {
            "repo_dir": backend_dir / "_gitrepos",
            "log_file": backend_dir / "_gitrepos.log",
            "port": 80,
            "log_level": "info",
            "host": "0.0.0.0",
        }

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """
        Resolve settings from the environment, a JSON config file and defaults.

        Keys in the config file use the environment variable names
        (e.g. ``{"GIT_REPO_DIR": "/srv/git"}``).

        Args:
            config_file: Path to the JSON config file. Defaults to
                ``default_config_file()``. A missing file is treated as empty.

        Returns:
            Settings: Resolved settings.

        Raises:
            ValueError: If the config file is not a JSON object or the port is
                not an integer.
        """
        file_values = _load_config_file(config_file or default_config_file())
        resolved = cls.defaults()
        for field, env_var in ENV_VARS.items():
            value = os.getenv(env_var)
            if value is None or value == "":
                value = file_values.get(env_var)
            if value is not None and value != "":
                resolved[field] = value

        try:
            resolved["port"] = int(resolved["port"])
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid port value: {resolved['port']!r}") from e

        return cls(**resolved)


def _load_config_file(config_file: Path) -> dict:
    """Load the JSON config file, returning an empty dict if it is missing."""
    if not config_file.exists():
        return {}
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file {config_file}: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"Config file {config_file} must contain a JSON object")
    return data
