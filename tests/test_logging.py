"""Tests for structured logging."""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
from pathlib import Path
from typing import Any

from waymark.errors import ValidationError
from waymark.logging import setup_logging, work_item_extra
from tests._db_factory import make_db


def _flush(logger: logging.Logger) -> None:
    for handler in logger.handlers:
        handler.flush()


def _records(log_dir: Path) -> list[dict[str, Any]]:
    return [json.loads(line) for line in (log_dir / "waymark.log").read_text().splitlines()]


class TestSetupLogging:
    def test_creates_log_file(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("test_message", extra={"route": "/api/work-items", "args_data": {"key": "val"}})
        _flush(logger)
        log_path = tmp_path / "waymark.log"
        assert log_path.exists()
        record = json.loads(log_path.read_text().strip())
        assert record["msg"] == "test_message"
        assert record["route"] == "/api/work-items"
        assert record["args"]["key"] == "val"
        assert record["level"] == "INFO"

    def test_json_format(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        logger.info("formatted", extra={"route": "/api/health", "status_code": 200, "duration_ms": 42.5})
        _flush(logger)
        record = json.loads((tmp_path / "waymark.log").read_text().strip().split("\n")[-1])
        assert record["duration_ms"] == 42.5
        assert record["status_code"] == 200

    def test_exception_is_recorded(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logger.error("api_error", exc_info=True)
        _flush(logger)
        record = json.loads((tmp_path / "waymark.log").read_text().strip().split("\n")[-1])
        assert record["level"] == "ERROR"
        assert record["exception"] == "boom"

    def test_lifecycle_error_kind_and_fields(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        try:
            raise ValidationError("Cannot move to 'launch'", fields=["review_status"])
        except ValidationError:
            logger.warning("transition_refused", exc_info=True)
        _flush(logger)
        record = _records(tmp_path)[-1]
        assert record["error_kind"] == "validation"
        assert record["error_fields"] == ["review_status"]
        assert record["exception"] == "Cannot move to 'launch'"

    def test_level_is_configurable(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path, level=logging.WARNING)
        logger.info("quiet")
        logger.warning("loud")
        _flush(logger)
        assert [r["msg"] for r in _records(tmp_path)] == ["loud"]

    def test_idempotent_setup(self, tmp_path: Path) -> None:
        logger1 = setup_logging(tmp_path)
        logger2 = setup_logging(tmp_path)
        assert logger1 is logger2
        assert len(logger1.handlers) == 1

    def test_new_directory_replaces_handler(self, tmp_path: Path) -> None:
        first = tmp_path / "one"
        second = tmp_path / "two"
        first.mkdir()
        second.mkdir()
        setup_logging(first)
        logger = setup_logging(second)
        file_handlers = [h for h in logger.handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename == os.path.abspath(str(second / "waymark.log"))

    def test_no_duplicate_handlers_under_concurrency(self, tmp_path: Path) -> None:
        """Concurrent setup_logging calls must not produce duplicate handlers."""
        import threading

        results: list[logging.Logger] = []
        barrier = threading.Barrier(4)

        def call_setup() -> None:
            barrier.wait()
            results.append(setup_logging(tmp_path))

        threads = [threading.Thread(target=call_setup) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 4
        assert all(r is results[0] for r in results)
        logger = logging.getLogger("waymark")
        file_handlers = [
            h
            for h in logger.handlers
            if isinstance(h, logging.handlers.RotatingFileHandler)
            and h.baseFilename == os.path.abspath(str(tmp_path / "waymark.log"))
        ]
        assert len(file_handlers) == 1, f"Expected 1 handler, got {len(file_handlers)}"

    def teardown_method(self) -> None:
        """Clean up the waymark logger handlers between tests."""
        logger = logging.getLogger("waymark")
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)


class TestWorkItemContext:
    def test_extra_payload(self) -> None:
        assert work_item_extra("wm-1", "bug", actor="", to_phase="fixing") == {
            "work_item_id": "wm-1",
            "work_item_type": "bug",
            "actor": "-",
            "to_phase": "fixing",
        }

    def test_transition_logged_with_item_context(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        db = make_db(tmp_path)
        try:
            item = db.create_work_item("Checkout")
            db.transition_phase(item.id, "build", actor="alice")
        finally:
            db.close()
        _flush(logger)
        moves = [r for r in _records(tmp_path) if r.get("to_phase") == "build"]
        assert len(moves) == 1
        assert moves[0]["work_item_id"] == item.id
        assert moves[0]["work_item_type"] == "feature"
        assert moves[0]["actor"] == "alice"
        assert moves[0]["from_phase"] == "design"
        assert moves[0]["logger"] == "waymark.db_lifecycle"

    def test_enhancement_logged_with_version(self, tmp_path: Path) -> None:
        logger = setup_logging(tmp_path)
        db = make_db(tmp_path)
        try:
            parent = db.create_work_item("Search")
            db.transition_phase(parent.id, "build")
            child = db.enhance_work_item(parent.id, "Add filters", actor="pm")
        finally:
            db.close()
        _flush(logger)
        record = next(r for r in _records(tmp_path) if r["msg"].startswith("Enhanced"))
        assert record["work_item_id"] == child.id
        assert record["version"] == 2
        assert record["actor"] == "pm"

    def teardown_method(self) -> None:
        logger = logging.getLogger("waymark")
        for handler in logger.handlers[:]:
            handler.close()
            logger.removeHandler(handler)
        logger.setLevel(logging.NOTSET)
