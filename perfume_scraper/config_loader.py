"""Configuration loader for the perfume image scraper."""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from loguru import logger


DEFAULT_ENV_FILES = [".env.local", ".env"]


class ConfigurationError(Exception):
    """Raised when a required configuration value is missing."""
    pass


def load_env_file(env_path: str) -> bool:
    """Load KEY=VALUE pairs from an env file into the process environment.

    Values in the file override variables already set.

    Returns:
        True when the file existed and was loaded.
    """
    path = Path(env_path)
    if not path.exists():
        logger.warning(f"Env file not found: {path}")
        return False
    load_dotenv(path, override=True)
    logger.debug(f"Loaded environment from {path}")
    return True


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, uses default locations.

    Returns:
        Dictionary with configuration values.
    """
    # Find config file
    if config_path is None:
        locations = [
            "config.yaml",
            "config.yml",
            "../config.yaml",
            "../config.yml",
        ]
        for loc in locations:
            if Path(loc).exists():
                config_path = loc
                break

    if config_path is None or not Path(config_path).exists():
        raise FileNotFoundError("Configuration file not found. Please provide config.yaml")

    with open(config_path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    # Env files are resolved relative to the config file
    base_dir = Path(config_path).resolve().parent
    env_files = raw.get("env_files") or DEFAULT_ENV_FILES
    loaded_any = False
    for env_file in env_files:
        env_path = Path(env_file)
        if not env_path.is_absolute():
            env_path = base_dir / env_path
        if env_path.exists():
            load_env_file(str(env_path))
            loaded_any = True
    if not loaded_any:
        logger.warning(f"No env file found (looked for: {', '.join(env_files)})")

    return _substitute_env_vars(raw)


def _substitute_env_vars(obj: Any) -> Any:
    """Recursively substitute environment variables in config.

    Supports syntax: ${VAR_NAME} or ${VAR_NAME:default_value}
    """
    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_substitute_env_vars(item) for item in obj]
    elif isinstance(obj, str):
        return _substitute_env_string(obj)
    else:
        return obj


def _substitute_env_string(value: str) -> str:
    """Substitute environment variables in a string."""
    pattern = r'\$\{([^}]+)\}'

    def replace(match):
        var_expr = match.group(1)
        if ':' in var_expr:
            var_name, default = var_expr.split(':', 1)
            return os.getenv(var_name, default)
        else:
            return os.getenv(var_expr, match.group(0))

    return re.sub(pattern, replace, value)


def is_unresolved(value: Any) -> bool:
    """Return True for empty values or ${VAR} placeholders left unsubstituted."""
    if value is None:
        return True
    text = str(value).strip()
    return not text or bool(re.fullmatch(r"\$\{[^}]+\}", text))


def require_setting(value: Any, env_var: str) -> str:
    """Return a required setting or raise ConfigurationError naming its variable."""
    if is_unresolved(value):
        raise ConfigurationError(f"Missing required configuration: {env_var}")
    return str(value).strip()


def get_site_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get target site configuration."""
    return config.get("site", {})


def get_scraping_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get scraping configuration."""
    return config.get("scraping", {})


def get_storage_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get storage configuration."""
    return config.get("storage", {})


def get_firebase_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get Firebase Realtime Database configuration."""
    return config.get("firebase", {})


def get_cloudinary_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """Get Cloudinary configuration."""
    return config.get("cloudinary", {})


def get_delay_range(section: Dict[str, Any], key: str, default: List[int]) -> tuple:
    """Read a [min_ms, max_ms] pair from a config section."""
    value = section.get(key, default)
    try:
        low, high = int(value[0]), int(value[1])
    except (TypeError, ValueError, IndexError):
        low, high = default
    return (min(low, high), max(low, high))


def ensure_directories(config: Dict[str, Any]):
    """Ensure all required directories exist."""
    storage = get_storage_config(config)

    Path(storage.get("images_dir", "data/images")).mkdir(parents=True, exist_ok=True)
    Path(storage.get("debug_dir", "data/debug")).mkdir(parents=True, exist_ok=True)
    Path(storage.get("results_path", "data/results.json")).parent.mkdir(parents=True, exist_ok=True)
    Path(storage.get("upload_log_path", "data/upload-log.json")).parent.mkdir(parents=True, exist_ok=True)
    Path(storage.get("exports_dir", "data/exports")).mkdir(parents=True, exist_ok=True)

    sqlite_path = storage.get("sqlite", {}).get("database_path", "data/ledger.db")
    Path(sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    log_path = config.get("logging", {}).get("file", "data/logs/scraper.log")
    Path(log_path).parent.mkdir(parents=True, exist_ok=True)
