"""
Infrastructure module - configuration, logging and data paths.
"""

from .data_paths import (
    get_project_root,
    get_data_root,
    get_resolution_db_path,
    get_exports_dir,
    get_logs_dir,
    ensure_data_directories,
)

from .logging_config import setup_logging

from .settings import (
    ScoringConfig,
    ThresholdConfig,
    OracleConfig,
    PipelineConfig,
    ResolverSettings,
)

__all__ = [
    # data_paths
    "get_project_root",
    "get_data_root",
    "get_resolution_db_path",
    "get_exports_dir",
    "get_logs_dir",
    "ensure_data_directories",
    # logging
    "setup_logging",
    # settings
    "ScoringConfig",
    "ThresholdConfig",
    "OracleConfig",
    "PipelineConfig",
    "ResolverSettings",
]
