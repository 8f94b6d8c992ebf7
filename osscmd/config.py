"""Configuration loading for osscmd.

Supports three configuration sources, highest priority first:
1. Explicit arguments (command-line flags)
2. Environment variables (for CI/CD)
3. osscmd.json file (for local development)

Environment Variables:
    OSS_HOST=oss-cn-hangzhou.aliyuncs.com
    OSS_ACCESS_ID=your-access-id
    OSS_ACCESS_KEY=your-access-key

JSON File Format:
    {
        "host": "oss-cn-hangzhou.aliyuncs.com",
        "access_id": "your-access-id",
        "access_key": "your-access-key",
        "default_part_size": 10485760,
        "default_thread_num": 10
    }
"""

import json
import os
from pathlib import Path
from typing import Any, Optional

from osscmd.models import ClientConfig

DEFAULT_HOST = "oss-cn-hangzhou.aliyuncs.com"
DEFAULT_CONFIG_PATH = "osscmd.json"


class ConfigError(Exception):
    """Raised when configuration loading fails."""

    pass


# Transfer tunables accepted in the JSON file, with their types
TUNABLES = {
    "scheme": str,
    "timeout": float,
    "part_min_size": int,
    "part_max_size": int,
    "default_part_size": int,
    "thread_min_num": int,
    "thread_max_num": int,
    "default_thread_num": int,
    "max_retry_num": int,
    "recv_buffer_size": int,
}

CREDENTIAL_FIELDS = ("host", "access_id", "access_key")


def load_from_json(config_path: str) -> dict[str, Any]:
    """Load settings from a JSON file.

    Args:
        config_path: Path to the JSON file.

    Returns:
        The raw settings, or an empty dict if the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON, is not an object,
                    or holds an unknown key.
    """
    path = Path(config_path)
    if not path.exists():
        return {}

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must hold a JSON object")

    unknown = sorted(set(data) - set(TUNABLES) - set(CREDENTIAL_FIELDS))
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    return data


def load_from_env() -> dict[str, str]:
    """Load connection settings from OSS_* environment variables."""
    settings = {}
    for field, env_var in (
        ("host", "OSS_HOST"),
        ("access_id", "OSS_ACCESS_ID"),
        ("access_key", "OSS_ACCESS_KEY"),
    ):
        value = os.environ.get(env_var)
        if value:
            settings[field] = value
    return settings


def _coerce_tunables(data: dict[str, Any]) -> dict[str, Any]:
    tunables = {}
    for name, kind in TUNABLES.items():
        if name not in data:
            continue
        value = data[name]
        if isinstance(value, bool):
            raise ConfigError(f"Invalid value for '{name}': {value!r}")
        try:
            tunables[name] = kind(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for '{name}': {value!r}") from e
        if kind is not str and tunables[name] <= 0:
            raise ConfigError(f"'{name}' must be positive, got {value!r}")
    return tunables


def load_client_config(
    host: Optional[str] = None,
    access_id: Optional[str] = None,
    access_secret: Optional[str] = None,
    config_path: str = DEFAULT_CONFIG_PATH,
) -> ClientConfig:
    """Build the process-wide ClientConfig.

    Args:
        host: Endpoint host, without the bucket
        access_id: Access key id
        access_secret: Access key secret
        config_path: Optional JSON file with credentials and tunables

    Returns:
        An immutable ClientConfig

    Raises:
        ConfigError: If credentials are missing or the file is invalid.
    """
    file_settings = load_from_json(config_path)
    env_settings = load_from_env()

    def pick(field: str, explicit: Optional[str]) -> Optional[str]:
        return explicit or env_settings.get(field) or file_settings.get(field)

    resolved_id = pick("access_id", access_id)
    resolved_key = pick("access_key", access_secret)
    if not resolved_id or not resolved_key:
        raise ConfigError(
            "No credentials configured. Pass --id/--key, set OSS_ACCESS_ID and "
            f"OSS_ACCESS_KEY, or add access_id/access_key to {config_path}."
        )

    tunables = _coerce_tunables(file_settings)
    config = ClientConfig(
        host=pick("host", host) or DEFAULT_HOST,
        access_id=resolved_id,
        access_secret=resolved_key,
        **tunables,
    )

    if config.part_min_size > config.part_max_size:
        raise ConfigError("part_min_size must not exceed part_max_size")
    if config.thread_min_num > config.thread_max_num:
        raise ConfigError("thread_min_num must not exceed thread_max_num")
    return config
