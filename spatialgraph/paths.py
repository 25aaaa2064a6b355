"""
Where the canvas keeps its files on disk.

    <app dir>/config.json    CanvasSettings overrides (see config.py)
    <app dir>/db/graph.json  the local authority's graph: nodes, edges and the
                             palette catalog, written after every accepted change

The app dir is the project root in development and the directory of the
executable when frozen, so a packaged build keeps its graph next to itself
rather than inside the bundle.
"""

import sys
from pathlib import Path


def get_app_dir() -> Path:
    """
    Get the application directory.

    - In development: the project root (parent of spatialgraph/)
    - When frozen: the directory containing the executable
    """
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path(__file__).parent.parent


def get_db_dir() -> Path:
    """Get the directory holding the local authority's graph file."""
    return get_app_dir() / "db"


def get_config_path() -> Path:
    """Get the path to the config file."""
    return get_app_dir() / "config.json"


def get_default_store_path() -> Path:
    """Graph file used when store_path is set to 'default'."""
    return get_db_dir() / "graph.json"


def ensure_db_dir() -> Path:
    """
    Ensure the db directory exists, creating it if necessary.
    Returns the path to the db directory.
    """
    db_dir = get_db_dir()
    db_dir.mkdir(parents=True, exist_ok=True)
    return db_dir
