"""
Configuration management for the spatial graph canvas.

Settings come from, in increasing priority:
1. Defaults on CanvasSettings
2. config.json next to the executable/project root
3. SPATIALGRAPH_* environment variables (app.py loads .env first)
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from spatialgraph.paths import get_config_path, get_default_store_path

logger = logging.getLogger(__name__)

ENV_PREFIX = "SPATIALGRAPH_"


@dataclass
class CanvasSettings:
    # Camera limits (the editor uses 0.3-2, the browser allows zooming to 3)
    min_zoom: float = 0.3
    max_zoom: float = 2.0
    browser_max_zoom: float = 3.0
    # Pending-edge buffer for edges that arrive before their endpoints
    pending_edge_ttl: float = 30.0
    pending_edge_limit: int = 500
    # Layout used by the browser view
    default_layout: str = "cose"
    # Seconds between channel pumps in the app
    pump_interval: float = 0.05
    # Canvas surface size in pixels
    canvas_width: int = 1200
    canvas_height: int = 800
    # Where the local authority persists its graph ('' keeps it in memory)
    store_path: str = ""
    log_level: str = "INFO"
    port: int = 8081


def load_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration from config.json."""
    config_path = config_path or get_config_path()
    if config_path.exists():
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load config from {config_path}: {e}")
            return {}
    return {}


def save_config(config: dict, config_path: Optional[Path] = None) -> None:
    """Save configuration to config.json."""
    config_path = config_path or get_config_path()
    with open(config_path, 'w', encoding='utf-8') as f:
        json.dump(config, f, indent=2)


def _coerce(value: Any, default: Any) -> Any:
    if isinstance(default, int):
        return int(value)
    if isinstance(default, float):
        return float(value)
    return str(value)


def get_settings(config_path: Optional[Path] = None,
                 environ: Optional[Dict[str, str]] = None) -> CanvasSettings:
    """
    Build settings from config.json and the environment.

    Unreadable values are logged and the default is kept.
    """
    environ = os.environ if environ is None else environ
    config = load_config(config_path)
    settings = CanvasSettings()

    for f in fields(CanvasSettings):
        default = getattr(settings, f.name)
        raw = environ.get(ENV_PREFIX + f.name.upper(), config.get(f.name))
        if raw is None:
            continue
        try:
            setattr(settings, f.name, _coerce(raw, default))
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid setting {f.name}={raw!r}")

    if settings.min_zoom <= 0 or settings.min_zoom > settings.max_zoom:
        logger.warning(
            f"Invalid zoom range {settings.min_zoom}-{settings.max_zoom}, using defaults"
        )
        settings.min_zoom, settings.max_zoom = CanvasSettings.min_zoom, CanvasSettings.max_zoom
    return settings


def resolve_store_path(settings: CanvasSettings) -> Optional[Path]:
    """Return the authority's store file, or None to keep the graph in memory."""
    if settings.store_path == "":
        return None
    if settings.store_path.lower() == "default":
        return get_default_store_path()
    return Path(settings.store_path)
