# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Structured logging setup for include-tree.

Two sinks:
- Application log: JSON lines for every logger (setup_logging)
- Package warnings: warnings.jsonl, one record per analysis finding
  (get_warning_logger, log_package_warning)

Package warning records always carry "kind" and "package_id" so the file can
be filtered per package and per finding type.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_LOG_DIR_NAME = ".include_tree_logs"

# Logger receiving analysis warnings for packages
WARNINGS_LOGGER_NAME = "include_tree.warnings"

# Finding types written to warnings.jsonl
WARNING_KINDS = ("cycle", "missing_file", "provider_error", "truncated")


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add any extra fields
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data)


class PackageWarningFormatter(StructuredFormatter):
    """JSON formatter for warnings.jsonl.

    Every record leads with kind and package_id (None when the emitter did
    not supply them) so lines stay filterable even for ad-hoc warnings.
    """

    def format(self, record: logging.LogRecord) -> str:
        extra_fields: Dict[str, Any] = dict(getattr(record, "extra_fields", {}))
        warning_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "kind": extra_fields.pop("kind", None),
            "package_id": extra_fields.pop("package_id", None),
            "message": record.getMessage(),
        }
        warning_data.update(extra_fields)
        return json.dumps(warning_data)


def setup_logging(
    log_dir: Optional[Path] = None,
    log_level: int = logging.INFO,
    console_output: bool = True,
) -> None:
    """Set up structured logging for the application.

    Console output goes to stderr so stdio-based transports keep stdout clean.

    Args:
        log_dir: Directory for log files. If None, uses .include_tree_logs/
        log_level: Logging level (default: INFO)
        console_output: Whether to also output to console (default: True)
    """
    if log_dir is None:
        log_dir = Path.cwd() / DEFAULT_LOG_DIR_NAME

    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove any existing handlers
    root_logger.handlers.clear()

    # File handler with structured JSON logging
    log_file = log_dir / f"include_tree_{datetime.now(timezone.utc).strftime('%Y%m%d')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(file_handler)

    # Console handler with human-readable format (if enabled)
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

    logging.info(f"Logging initialized. Log directory: {log_dir}")


def get_warning_logger(log_dir: Optional[Path] = None) -> logging.Logger:
    """Get logger for package analysis warnings (cycles, missing files).

    Records are written as JSONL to {log_dir}/warnings.jsonl and do not
    propagate to the root logger.

    Args:
        log_dir: Directory for log files. If None, uses .include_tree_logs/

    Returns:
        Logger configured for warning output
    """
    if log_dir is None:
        log_dir = Path.cwd() / DEFAULT_LOG_DIR_NAME

    log_dir.mkdir(parents=True, exist_ok=True)

    warning_logger = logging.getLogger(WARNINGS_LOGGER_NAME)
    warning_logger.setLevel(logging.INFO)
    warning_logger.propagate = False  # Don't propagate to root logger

    # Remove any existing handlers
    for handler in list(warning_logger.handlers):
        warning_logger.removeHandler(handler)
        handler.close()

    warnings_file = log_dir / "warnings.jsonl"
    warnings_handler = logging.FileHandler(warnings_file, encoding="utf-8")
    warnings_handler.setLevel(logging.INFO)
    warnings_handler.setFormatter(PackageWarningFormatter())
    warning_logger.addHandler(warnings_handler)

    return warning_logger


def log_package_warning(
    kind: str,
    package_id: str,
    message: str,
    session_id: Optional[str] = None,
    **fields: Any,
) -> None:
    """Write one package analysis warning to the warnings logger.

    Args:
        kind: One of WARNING_KINDS.
        package_id: Package the finding belongs to.
        message: Human-readable description.
        session_id: Analysis session, included when known.
        **fields: Kind-specific fields (e.g. cycle, path, error).

    Raises:
        ValueError: If kind is not a known warning kind.
    """
    if kind not in WARNING_KINDS:
        raise ValueError(f"Unknown warning kind {kind!r}, expected one of {WARNING_KINDS}")

    extra_fields: Dict[str, Any] = {"kind": kind, "package_id": package_id}
    if session_id is not None:
        extra_fields["session_id"] = session_id
    extra_fields.update(fields)

    logging.getLogger(WARNINGS_LOGGER_NAME).warning(
        message, extra={"extra_fields": extra_fields}
    )
