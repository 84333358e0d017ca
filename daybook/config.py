"""Application configuration management."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from daybook.models import AppConfig, StoreBackend

log = logging.getLogger(__name__)

_HOME_OVERRIDE = os.environ.get("DAYBOOK_HOME")

if _HOME_OVERRIDE:
    _CONFIG_DIR = Path(_HOME_OVERRIDE).expanduser()
    _DATA_DIR = _CONFIG_DIR / "data"
else:
    _CONFIG_DIR = Path.home() / ".config" / "daybook"
    _DATA_DIR = Path.home() / ".local" / "share" / "daybook"

_CONFIG_FILE = _CONFIG_DIR / "config.json"

_DEFAULT_NAMES: dict[StoreBackend, str] = {
    StoreBackend.SQLITE: "daybook.db",
    StoreBackend.DIRECTORY: "slots",
}


def load_config() -> AppConfig:
    """Load config from disk, returning defaults if none exists."""
    if _CONFIG_FILE.exists():
        try:
            data = json.loads(_CONFIG_FILE.read_text())
            return AppConfig(**data)
        except (OSError, json.JSONDecodeError, TypeError, ValidationError) as exc:
            log.warning("Ignoring unreadable config %s: %s", _CONFIG_FILE, exc)
    return AppConfig()


def save_config(config: AppConfig) -> Path:
    """Write config to disk. Returns the config file path."""
    _CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    _CONFIG_FILE.write_text(config.model_dump_json(indent=2))
    return _CONFIG_FILE


def get_store_path(config: Optional[AppConfig] = None) -> Path:
    """Resolve the store location from config (or default)."""
    config = config or load_config()
    if config.store_path is not None:
        p = Path(config.store_path)
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    _DATA_DIR.mkdir(parents=True, exist_ok=True)
    return _DATA_DIR / _DEFAULT_NAMES[config.backend]


def set_store_path(path: str, backend: Optional[StoreBackend] = None) -> AppConfig:
    """Set a custom store location (and optionally the backend) and save config."""
    config = load_config()
    if backend is not None:
        config.backend = backend
    resolved = Path(path).expanduser().resolve()
    # A SQLite store needs a file name; a directory store is the directory itself
    if config.backend is StoreBackend.SQLITE and resolved.is_dir():
        resolved = resolved / _DEFAULT_NAMES[StoreBackend.SQLITE]
    resolved.parent.mkdir(parents=True, exist_ok=True)
    config.store_path = str(resolved)
    save_config(config)
    return config


def set_backend(backend: StoreBackend) -> AppConfig:
    """Switch backend. A custom store path is cleared since its shape differs."""
    config = load_config()
    if config.backend is not backend:
        config.backend = backend
        config.store_path = None
        save_config(config)
    return config


def set_focus_minutes(minutes: int) -> AppConfig:
    """Change the nominal length of new focus sessions."""
    config = load_config()
    config = config.model_copy(update={"focus_minutes": AppConfig(focus_minutes=minutes).focus_minutes})
    save_config(config)
    return config


def reset_store_path() -> AppConfig:
    """Reset to the default local store."""
    config = load_config()
    config.store_path = None
    config.backend = StoreBackend.SQLITE
    save_config(config)
    return config
