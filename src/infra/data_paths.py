"""
Data path helpers for the publication resolution engine.

Centralized path management for the resolution database and logs.

Directory structure:
data/
 ├── resolution.db             # Canonical articles, ledger, publications, FTS5 index
 └── exports/                  # Publication exports (export command)

logs/                          # Daily rotating log files

Environment Variables:
- RESOLUTION_DB_PATH: Override the SQLite database path (default: data/resolution.db)
- RESOLUTION_DATA_DIR: Override the data root (default: <project_root>/data)
- LOG_DIR: Override the logs directory (default: <project_root>/logs)
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


# =============================================================================
# Environment Variable Helpers
# =============================================================================

def _get_env_path(key: str) -> Path | None:
    """Get a resolved path from an environment variable, if set."""
    val = os.getenv(key)
    if val:
        return Path(val).expanduser().resolve()
    return None


# =============================================================================
# Base Paths (relative to project root)
# =============================================================================

def get_project_root() -> Path:
    """
    Get the project root directory.

    File is at src/infra/data_paths.py, so project root is 2 levels up.

    Returns:
        Path: Project root directory
    """
    return Path(__file__).parent.parent.parent.resolve()


def get_data_root() -> Path:
    """
    Get the data root directory.

    Returns:
        Path: data/ directory path
    """
    return _get_env_path("RESOLUTION_DATA_DIR") or get_project_root() / "data"


def get_resolution_db_path() -> Path:
    """Get the resolution SQLite database path."""
    return _get_env_path("RESOLUTION_DB_PATH") or get_data_root() / "resolution.db"


def get_exports_dir() -> Path:
    """Get the directory publication exports are written to."""
    return get_data_root() / "exports"


def get_logs_dir() -> Path:
    """
    Get logs directory.

    Returns:
        Path: Logs directory
    """
    return _get_env_path("LOG_DIR") or get_project_root() / "logs"


# =============================================================================
# Directory Initialization
# =============================================================================

def ensure_data_directories() -> dict:
    """
    Ensure all required data directories exist.

    Safe to call multiple times. Not run on import; entry points call it.

    Returns:
        dict: Dictionary of created/existing directory paths
    """
    directories = {
        "data_root": get_data_root(),
        "database_dir": get_resolution_db_path().parent,
        "exports": get_exports_dir(),
        "logs": get_logs_dir(),
    }

    created = []
    for name, path in directories.items():
        if not path.exists():
            path.mkdir(parents=True, exist_ok=True)
            created.append(name)
            logger.debug(f"[DataPaths] Created directory: {path}")

    if created:
        logger.info(f"[DataPaths] Initialized directories: {', '.join(created)}")

    return directories


def get_all_paths() -> dict:
    """
    Get all data paths as a dictionary.

    Useful for debugging and configuration display.
    """
    return {
        "project_root": get_project_root(),
        "data_root": get_data_root(),
        "resolution_db": get_resolution_db_path(),
        "exports": get_exports_dir(),
        "logs": get_logs_dir(),
    }
