"""Run logging: colored console, plain log file, secret masking."""

import logging
import sys
from pathlib import Path
from typing import Iterable, Set

from dominion_deploy.io.logging import get_timestamped_log_path

MASK = "***"

FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name for terminals."""

    def __init__(self, fmt: str, datefmt: str, colors: dict):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colors = colors

    def format(self, record):
        # Copy so the file handler does not see the color codes
        record = logging.makeLogRecord(record.__dict__)
        color = self.colors.get(record.levelname, self.colors["RESET"])
        record.levelname = f"{color}{record.levelname}{self.colors['RESET']}"
        return super().format(record)


class SecretMaskingFilter(logging.Filter):
    """Replaces registered secret values in every record's final message."""

    def __init__(self) -> None:
        super().__init__()
        self.secrets: Set[str] = set()

    def filter(self, record: logging.LogRecord) -> bool:
        if self.secrets:
            message = record.getMessage()
            for secret in sorted(self.secrets, key=len, reverse=True):
                message = message.replace(secret, MASK)
            record.msg = message
            record.args = None
        return True


class PipelineLogger:
    """Logger for one pipeline run.

    Writes the full run to a timestamped file under ``log_dir`` and a
    colored, shorter rendition to stdout. Values passed to
    :meth:`add_secrets` never reach either destination.

    Parameters
    ----------
    log_dir : str
        Directory for log files
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_name : str, optional
        Logger name. Default: "dominion_deploy"

    Attributes
    ----------
    log_file : Path
        ``pipeline_<timestamp>.log`` inside ``log_dir``
    logger : logging.Logger
        Underlying logger, also handed to built-in actions

    Example
    -------
    >>> logger = PipelineLogger("logs/", log_level="INFO")
    >>> logger.setup()
    >>> logger.add_secrets(["hunter2"])
    >>> logger.log_info("password is hunter2")  # logged as "password is ***"
    """

    COLORS = {
        "DEBUG": "\033[0;36m",
        "INFO": "\033[0;34m",
        "WARNING": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "CRITICAL": "\033[1;31m",
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        log_dir: str,
        log_level: str = "INFO",
        log_name: str = "dominion_deploy",
    ):
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = get_timestamped_log_path(self.log_dir / "pipeline.log")

        self.log_level = getattr(logging, log_level.upper())
        self.masking = SecretMaskingFilter()
        self.logger = logging.getLogger(log_name)
        self.logger.setLevel(self.log_level)
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()
        for old_filter in list(self.logger.filters):
            if isinstance(old_filter, SecretMaskingFilter):
                self.logger.removeFilter(old_filter)
        self.logger.addFilter(self.masking)

    def setup(self) -> None:
        """Attach the file and console handlers."""
        file_handler = logging.FileHandler(self.log_file, mode="w", encoding="utf-8")
        file_handler.setLevel(self.log_level)
        file_handler.setFormatter(
            logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(
            ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt="%H:%M:%S", colors=self.COLORS)
        )

        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)

    def add_secrets(self, values: Iterable[str]) -> None:
        """Register values that must be masked in all later records."""
        self.masking.secrets.update(v for v in values if v)

    def log_stage_start(self, stage_id: str, stage_name: str) -> None:
        separator = "=" * 80
        self.logger.info(separator)
        self.logger.info(f"Starting Stage {stage_id}: {stage_name}")
        self.logger.info(separator)

    def log_stage_complete(self, stage_id: str, duration: float) -> None:
        self.logger.info(
            f"Stage {stage_id} completed successfully in {self.format_duration(duration)}"
        )

    def log_stage_error(self, stage_id: str, error: str) -> None:
        self.logger.error(f"Stage {stage_id} failed: {error}")

    def log_stage_skipped(self, stage_id: str, reason: str) -> None:
        self.logger.info(f"[SKIP] Stage {stage_id}: {reason}")

    def log_step_start(self, step_name: str) -> None:
        self.logger.info(f"--> {step_name}")

    def log_step_ignored(self, step_name: str, error: str) -> None:
        """Log a failure that is not allowed to fail the stage."""
        self.logger.warning(f"Step '{step_name}' failed (ignored): {error}")

    def log_summary(self, stage_lines: Iterable[str]) -> None:
        """Log the end-of-run table, one line per stage."""
        self.logger.info("-" * 80)
        for line in stage_lines:
            self.logger.info(line)
        self.logger.info("-" * 80)

    def log_info(self, message: str) -> None:
        self.logger.info(message)

    def log_warning(self, message: str) -> None:
        self.logger.warning(message)

    def log_error(self, message: str) -> None:
        self.logger.error(message)

    def log_debug(self, message: str) -> None:
        self.logger.debug(message)

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format a duration as "45.2s", "1m 23s" or "2h 15m"."""
        if seconds < 60:
            return f"{seconds:.1f}s"
        if seconds < 3600:
            return f"{int(seconds // 60)}m {int(seconds % 60)}s"
        return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60)}m"
