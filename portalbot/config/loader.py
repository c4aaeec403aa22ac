from __future__ import annotations

import json
import os
import threading
from pathlib import Path

from portalbot.log import get_home_dir, logger

_USER_CONFIG_NAME = "config.json"

# Environment variable -> (section, key, type)
_ENV_OVERRIDES: dict[str, tuple[str, str, type]] = {
    "PORTALBOT_HOST": ("server", "host", str),
    "PORTALBOT_PORT": ("server", "port", int),
    "PORTALBOT_STATE_FILE": ("sessions", "state_file", str),
    "PORTALBOT_LOG_LEVEL": ("logging", "level", str),
}

# In-memory config (loaded once, protected by lock)
_config = None
_config_lock = threading.Lock()


def get_config() -> dict:
    """Get the effective config: packaged defaults, user file, then environment."""
    global _config

    if _config is not None:
        return _config

    with _config_lock:
        if _config is not None:
            return _config

        result = _load_defaults()

        user = _load_user_config()
        if user:
            result = merge_config(result, user)

        result = _apply_env(result)
        _config = result
        return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads everything."""
    global _config
    with _config_lock:
        _config = None


def get_server_config() -> dict:
    return get_config().get("server", {})


def resolve_state_file(cfg: dict | None = None) -> Path:
    """Path of the persisted conversations file (defaults to the home dir)."""
    sessions = (cfg or get_config()).get("sessions", {})
    configured = sessions.get("state_file") or ""
    if configured:
        return Path(configured).expanduser()
    return get_home_dir() / "conversations.json"


def _load_defaults() -> dict:
    try:
        defaults_path = Path(__file__).parent / "defaults.json"
        with open(defaults_path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        logger.warning("Failed to load defaults.json, using minimal hardcoded config")
        return {
            "server": {"host": "127.0.0.1", "port": 5050, "cors_origins": []},
            "sessions": {},
            "chat": {},
        }


def _load_user_config() -> dict | None:
    try:
        path = get_home_dir() / _USER_CONFIG_NAME
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            logger.debug("User config is not a dict, ignoring")
            return None
        return data
    except (OSError, ValueError):
        logger.warning("Failed to load user config, using defaults", exc_info=True)
        return None


def _apply_env(cfg: dict) -> dict:
    result = merge_config(cfg, {})
    for var, (section, key, cast) in _ENV_OVERRIDES.items():
        raw = os.environ.get(var, "")
        if not raw:
            continue
        try:
            value = cast(raw)
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", var, raw)
            continue
        result.setdefault(section, {})[key] = value

    frontend = os.environ.get("PORTALBOT_FRONTEND_URL", "")
    if frontend:
        origins = list(result.get("server", {}).get("cors_origins", []))
        if frontend not in origins:
            origins.append(frontend)
        result.setdefault("server", {})["cors_origins"] = origins
    return result


def merge_config(base: dict, override: dict, depth: int = 0) -> dict:
    """Deep merge override into base. Override values win.

    Args:
        base: The base dict to merge into.
        override: The override dict whose values win on conflict.
        depth: Current recursion depth. Stops recursing at 10.
    """
    _MAX_MERGE_DEPTH = 10
    result = {k: (dict(v) if isinstance(v, dict) else v) for k, v in base.items()}
    for key, value in override.items():
        if key.startswith("_"):
            continue
        if (
            depth < _MAX_MERGE_DEPTH
            and key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = merge_config(result[key], value, depth=depth + 1)
        else:
            result[key] = value
    return result
