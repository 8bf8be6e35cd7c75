"""I/O utilities for dominion-deploy.

Provides timestamped log paths and appended run reports (JSON lines, YAML).
"""

from .logging import get_timestamped_log_path, log_json, log_yaml, write_run_report

__all__ = [
    "get_timestamped_log_path",
    "log_json",
    "log_yaml",
    "write_run_report",
]
