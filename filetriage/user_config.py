"""
User configuration persistence.

Stores deployment preferences (upload root, enabled probes, tool paths)
in ~/.filetriage/config.json so they persist across restarts.
Environment variables always take priority.
"""
import os
import json
import logging

from pathlib import Path
from typing import Optional, Dict, Any

logger = logging.getLogger("FileTriage")

CONFIG_DIR = Path.home() / ".filetriage"
CONFIG_FILE = CONFIG_DIR / "config.json"

# Maps config keys to their corresponding environment variable names
_ENV_VAR_MAP = {
    "upload_dir": "FILETRIAGE_UPLOAD_DIR",
    "enabled_probes": "FILETRIAGE_PROBES",
    "probe_timeout": "FILETRIAGE_PROBE_TIMEOUT",
    "pecli_subcommand": "FILETRIAGE_PECLI_SUBCOMMAND",
    "delete_after_analysis": "FILETRIAGE_DELETE_AFTER_ANALYSIS",
    "max_upload_mb": "FILETRIAGE_MAX_UPLOAD_MB",
    "host": "FILETRIAGE_HOST",
    "port": "FILETRIAGE_PORT",
    "file_path": "FILETRIAGE_FILE_PATH",
    "trid_path": "FILETRIAGE_TRID_PATH",
    "exiftool_path": "FILETRIAGE_EXIFTOOL_PATH",
    "capa_path": "FILETRIAGE_CAPA_PATH",
    "pecli_path": "FILETRIAGE_PECLI_PATH",
}

# Keys the config file understands.
CONFIG_KEYS = tuple(_ENV_VAR_MAP)


def _ensure_config_dir() -> None:
    """Create ~/.filetriage/ directory if it does not exist."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)


def load_user_config() -> Dict[str, Any]:
    """Read ~/.filetriage/config.json and return its contents as a dict."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            logger.warning(f"User config at {CONFIG_FILE} is not a JSON object, ignoring.")
            return {}
        return data
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Failed to read user config from {CONFIG_FILE}: {e}")
        return {}


def save_user_config(config: Dict[str, Any]) -> None:
    """Write config dict to ~/.filetriage/config.json, creating the directory if needed."""
    _ensure_config_dir()
    try:
        with open(CONFIG_FILE, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2, sort_keys=True)
    except OSError as e:
        logger.error(f"Failed to write user config to {CONFIG_FILE}: {e}")
        raise


def get_config_value(key: str) -> Optional[str]:
    """
    Retrieve a config value with environment variable priority.

    Resolution order:
      1. Environment variable (e.g. FILETRIAGE_UPLOAD_DIR)
      2. ~/.filetriage/config.json
      3. None
    """
    env_var = _ENV_VAR_MAP.get(key)
    if env_var:
        env_val = os.getenv(env_var)
        if env_val:
            return env_val

    config = load_user_config()
    val = config.get(key)
    if val is None:
        return None
    # Lists are stored as JSON arrays but resolved like the comma-separated env form
    if isinstance(val, list):
        return ",".join(str(v) for v in val)
    return str(val)


def set_config_value(key: str, value: str) -> None:
    """Store a config value in ~/.filetriage/config.json."""
    config = load_user_config()
    config[key] = value
    save_user_config(config)
    logger.info(f"Config key '{key}' saved to {CONFIG_FILE}")


def delete_config_value(key: str) -> bool:
    """Remove a config key from ~/.filetriage/config.json. Returns True if key existed."""
    config = load_user_config()
    if key in config:
        del config[key]
        save_user_config(config)
        logger.info(f"Config key '{key}' removed from {CONFIG_FILE}")
        return True
    return False


def get_effective_config() -> Dict[str, Any]:
    """
    Return the stored config annotated with the keys currently
    overridden by environment variables.
    """
    effective = dict(load_user_config())
    overrides = {}
    for key, env_var in _ENV_VAR_MAP.items():
        if os.getenv(env_var):
            overrides[key] = f"(overridden by ${env_var} environment variable)"
    if overrides:
        effective["_env_overrides"] = overrides
    return effective
