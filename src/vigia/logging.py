"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/vigia/logging.py`.
Configuración de structlog para el servidor de resultados y utilidades para
adjuntar contexto de registro (id de resultado, distrito, división).

Componentes detectados:
  - log_file_path
  - setup_logging
  - get_logger
  - bind_context

======================== ENGLISH ========================
File: `src/vigia/logging.py`.
structlog configuration for the result server and helpers to bind record
context (result id, district, division).

Detected components:
  - log_file_path
  - setup_logging
  - get_logger
  - bind_context
"""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any, Optional

import structlog


LOG_FILE_NAME = "vigia.log"


def log_file_path(storage_path: Path) -> Path:
    """Ruta del log rotativo dentro del almacenamiento. / Rotating log path under storage."""
    return storage_path / "logs" / LOG_FILE_NAME


def setup_logging(
    log_level: str,
    storage_path: Path,
    *,
    rotate_when: str = "midnight",
    backup_count: int = 30,
    console: bool = True,
) -> structlog.BoundLogger:
    """Configura structlog con salida JSON a archivo rotativo y consola.

    Args:
        log_level: Nivel mínimo (``INFO``, ``DEBUG``...).
        storage_path: Directorio base; el log va en ``logs/vigia.log``.
        rotate_when: Intervalo de rotación de ``TimedRotatingFileHandler``.
        backup_count: Archivos rotados que se conservan.
        console: Duplicar la salida en stderr.

    English:
        Configure structlog with JSON output to a rotating file and console.
    """
    level = logging.getLevelName(log_level.upper())
    path = log_file_path(storage_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    handlers: list[logging.Handler] = [
        TimedRotatingFileHandler(path, when=rotate_when, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())
    logging.basicConfig(level=level, handlers=handlers, format="%(message)s", force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logger = structlog.get_logger("vigia")
    logger.debug("logging_configured", file=str(path), rotate_when=rotate_when, backup_count=backup_count)
    return logger


def get_logger(name: str) -> structlog.BoundLogger:
    """Devuelve un logger estructurado con nombre.

    English: Return a named structured logger.
    """
    return structlog.get_logger(name)


def bind_context(
    logger: structlog.BoundLogger,
    record_id: Optional[str] = None,
    ed_code: Optional[str] = None,
    pd_code: Optional[str] = None,
) -> structlog.BoundLogger:
    """Adjunta contexto estándar al logger.

    English: Bind standard context to the logger.
    """
    context: dict[str, Any] = {}
    if record_id:
        context["record_id"] = record_id
    if ed_code:
        context["ed_code"] = ed_code
    if pd_code:
        context["pd_code"] = pd_code
    return logger.bind(**context)
