"""Log file naming and run reports for dominion-deploy.

Run reports are appended so one file accumulates the history of every run:
``.yaml``/``.yml`` files receive YAML documents separated by ``---``, any
other suffix receives one JSON object per line.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Union

import yaml

PathLike = Union[str, Path]

YAML_SUFFIXES = (".yaml", ".yml")


def get_timestamped_log_path(log_path: PathLike) -> Path:
    """Generate a timestamped log path from the base log path.

    Example: pipeline.log -> pipeline_20251209_080530.log

    Parameters
    ----------
    log_path : PathLike
        Base log file path.

    Returns
    -------
    Path
        Timestamped log path.
    """
    log_path = Path(log_path)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    suffix = log_path.suffix or ".log"
    return log_path.parent / f"{log_path.stem}_{timestamp}{suffix}"


def _prepare_log_destination(log_path: PathLike) -> Path:
    """Ensure log destination directory exists."""
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def log_json(log_path: PathLike, record: dict[str, Any]) -> None:
    """Append a JSON line to log_path."""
    path = _prepare_log_destination(log_path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(record, default=str))
        handle.write("\n")


def log_yaml(log_path: PathLike, record: dict[str, Any]) -> None:
    """Append a YAML document to log_path."""
    yaml_text = yaml.safe_dump(record, sort_keys=False, allow_unicode=True).rstrip("\n")
    path = _prepare_log_destination(log_path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(f"{yaml_text}\n---\n")


def write_run_report(report_path: PathLike, record: dict[str, Any]) -> Path:
    """Append a run report, choosing the format from the file suffix.

    Parameters
    ----------
    report_path : PathLike
        Report file; created with its parent directories if missing.
    record : dict
        Serialized run result (``PipelineResult.to_dict()``).

    Returns
    -------
    Path
        The report file written to.
    """
    path = Path(report_path)
    if path.suffix.lower() in YAML_SUFFIXES:
        log_yaml(path, record)
    else:
        log_json(path, record)
    return path
