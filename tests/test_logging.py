"""Pruebas de la configuración de logging estructurado.

Tests for structured logging setup.
"""

import json
import logging
from logging.handlers import TimedRotatingFileHandler

import structlog

from vigia.logging import bind_context, log_file_path, setup_logging


def test_setup_logging_writes_json_lines(tmp_path):
    logger = setup_logging("INFO", tmp_path)
    bind_context(logger, record_id="r1", pd_code="PD1").info("result_created", sequence=1)
    for handler in logging.getLogger().handlers:
        handler.flush()

    log_file = tmp_path / "logs" / "vigia.log"
    lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines() if line.strip()]

    assert lines[-1]["event"] == "result_created"
    assert lines[-1]["record_id"] == "r1"
    assert lines[-1]["pd_code"] == "PD1"
    assert lines[-1]["level"] == "info"
    assert "timestamp" in lines[-1]

    structlog.reset_defaults()
    logging.basicConfig(handlers=[logging.NullHandler()], force=True)


def test_bind_context_skips_empty_values():
    logger = structlog.get_logger("test")

    bound = bind_context(logger, record_id=None, ed_code="", pd_code="PD1")

    assert bound._context == {"pd_code": "PD1"}


def test_rotation_settings_are_applied(tmp_path):
    setup_logging("DEBUG", tmp_path, rotate_when="H", backup_count=3, console=False)

    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], TimedRotatingFileHandler)
    assert handlers[0].backupCount == 3
    assert handlers[0].when == "H"
    assert log_file_path(tmp_path).exists()

    structlog.reset_defaults()
    logging.basicConfig(handlers=[logging.NullHandler()], force=True)
