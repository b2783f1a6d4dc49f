# Copyright (c) 2025 Henru Wang
# All rights reserved.

"""Tests for structured logging setup."""

import json
import logging
import sys
from pathlib import Path
from typing import Iterator

import pytest

from include_tree.logging_setup import (
    WARNING_KINDS,
    WARNINGS_LOGGER_NAME,
    PackageWarningFormatter,
    StructuredFormatter,
    get_warning_logger,
    log_package_warning,
    setup_logging,
)


@pytest.fixture(autouse=True)
def restore_loggers() -> Iterator[None]:
    """Undo handler changes so other tests keep pytest's log capture."""
    root = logging.getLogger()
    warning_logger = logging.getLogger(WARNINGS_LOGGER_NAME)
    saved_root = (list(root.handlers), root.level)
    saved_warning = (list(warning_logger.handlers), warning_logger.level, warning_logger.propagate)
    yield
    for logger, handlers in ((root, saved_root[0]), (warning_logger, saved_warning[0])):
        for handler in list(logger.handlers):
            if handler not in handlers:
                logger.removeHandler(handler)
                handler.close()
        for handler in handlers:
            if handler not in logger.handlers:
                logger.addHandler(handler)
    root.setLevel(saved_root[1])
    warning_logger.setLevel(saved_warning[1])
    warning_logger.propagate = saved_warning[2]


class TestStructuredFormatter:
    def test_formats_json(self) -> None:
        record = logging.LogRecord(
            "include_tree.x", logging.WARNING, __file__, 1, "hello %s", ("you",), None
        )
        record.extra_fields = {"package_id": "pkg-1"}

        data = json.loads(StructuredFormatter().format(record))
        assert data["level"] == "WARNING"
        assert data["logger"] == "include_tree.x"
        assert data["message"] == "hello you"
        assert data["package_id"] == "pkg-1"
        assert data["timestamp"].endswith("Z")

    def test_includes_exception(self) -> None:
        try:
            raise ValueError("bad")
        except ValueError:
            exc_info = sys.exc_info()
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, exc_info)

        data = json.loads(StructuredFormatter().format(record))
        assert "ValueError: bad" in data["exception"]


class TestSetupLogging:
    def test_writes_json_log_file(self, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        setup_logging(log_dir=log_dir, console_output=False)
        logging.getLogger("include_tree.test").info("analysis started")
        for handler in logging.getLogger().handlers:
            handler.flush()

        log_files = list(log_dir.glob("include_tree_*.log"))
        assert len(log_files) == 1
        messages = [json.loads(line)["message"] for line in log_files[0].read_text().splitlines()]
        assert "analysis started" in messages

    def test_console_handler_uses_stderr(self, tmp_path: Path) -> None:
        setup_logging(log_dir=tmp_path, console_output=True)
        streams = [
            h.stream
            for h in logging.getLogger().handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        ]
        assert streams == [sys.stderr]


class TestWarningLogger:
    def test_writes_warnings_jsonl(self, tmp_path: Path) -> None:
        warning_logger = get_warning_logger(tmp_path)
        warning_logger.warning(
            "Circular include chain", extra={"extra_fields": {"kind": "cycle"}}
        )
        for handler in warning_logger.handlers:
            handler.flush()

        lines = (tmp_path / "warnings.jsonl").read_text().splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["message"] == "Circular include chain"
        assert record["kind"] == "cycle"
        assert warning_logger.propagate is False

    def test_repeated_setup_replaces_handlers(self, tmp_path: Path) -> None:
        get_warning_logger(tmp_path / "one")
        warning_logger = get_warning_logger(tmp_path / "two")
        assert len(warning_logger.handlers) == 1


class TestPackageWarnings:
    def test_record_shape(self, tmp_path: Path) -> None:
        warning_logger = get_warning_logger(tmp_path)
        log_package_warning(
            "missing_file",
            "pkg-1",
            "Missing include target in pkg-1: gone.lua",
            session_id="s-1",
            path="gone.lua",
        )
        for handler in warning_logger.handlers:
            handler.flush()

        record = json.loads((tmp_path / "warnings.jsonl").read_text().splitlines()[0])
        assert list(record)[:4] == ["timestamp", "kind", "package_id", "message"]
        assert record["kind"] == "missing_file"
        assert record["package_id"] == "pkg-1"
        assert record["session_id"] == "s-1"
        assert record["path"] == "gone.lua"
        assert "level" not in record

    def test_plain_warning_gets_empty_kind(self, tmp_path: Path) -> None:
        warning_logger = get_warning_logger(tmp_path)
        warning_logger.warning("something odd")
        for handler in warning_logger.handlers:
            handler.flush()

        record = json.loads((tmp_path / "warnings.jsonl").read_text().splitlines()[0])
        assert record["kind"] is None
        assert record["package_id"] is None
        assert record["message"] == "something odd"

    def test_session_id_omitted_when_unknown(self) -> None:
        record = logging.LogRecord(
            WARNINGS_LOGGER_NAME, logging.WARNING, __file__, 1, "m", None, None
        )
        record.extra_fields = {"kind": "truncated", "package_id": "pkg-1"}

        data = json.loads(PackageWarningFormatter().format(record))
        assert "session_id" not in data

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValueError):
            log_package_warning("typo", "pkg-1", "message")

    @pytest.mark.parametrize("kind", WARNING_KINDS)
    def test_known_kinds_accepted(self, tmp_path: Path, kind: str) -> None:
        get_warning_logger(tmp_path)
        log_package_warning(kind, "pkg-1", "message")
