# Config Module
# AUTO-DOC-INDEX
#
# ES: Índice rápido
#   1) Propósito del módulo
#   2) Componentes principales
#   3) Puntos de extensión
#
# EN: Quick index
#   1) Module purpose
#   2) Main components
#   3) Extension points
#
# Secciones / Sections:
#   - Configuración / Configuration
#   - Lógica principal / Core logic
#   - Integraciones / Integrations

"""Configuración validada de Vigía.

Validated Vigía configuration.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List

import yaml
from dotenv import load_dotenv
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_PATH = Path(".env")
_ENV_LOCAL_PATH = Path(".env.local")
DEFAULT_CONFIG_FILE = Path("config") / "vigia.yaml"

load_dotenv(_ENV_PATH, override=False)
load_dotenv(_ENV_LOCAL_PATH, override=False)


class VigiaSettings(BaseSettings):
    """Variables de entorno y archivo .env para Vigía.

    English: Environment variables and .env file for Vigía.
    """

    model_config = SettingsConfigDict(
        env_prefix="VIGIA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    CATALOG_PATH: Path = Path("data") / "districts.json"
    STORAGE_PATH: Path = Path(".")
    LOG_LEVEL: str = "INFO"
    LOG_ROTATE_WHEN: str = "midnight"
    LOG_BACKUP_COUNT: int = Field(default=30, ge=0)
    LOG_CONSOLE: bool = True
    HOST: str = "0.0.0.0"  # nosec B104 - bind address for the result server
    PORT: int = Field(default=4000, ge=1, le=65535)
    CORS_ORIGINS: str = "*"
    SUBSCRIBER_QUEUE_SIZE: int = Field(default=256, ge=1)
    AUDIT_LOG_SIZE: int = Field(default=10000, ge=1)

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        """Normaliza el nivel de log a mayúsculas.

        English: Normalize the log level to upper case.
        """
        normalized = value.strip().upper()
        if normalized not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return normalized

    def cors_origins(self) -> List[str]:
        """/** Lista de orígenes CORS. / List of CORS origins. **/"""
        raw = self.CORS_ORIGINS.strip()
        if raw == "*":
            return ["*"]
        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    def validate_paths(self) -> None:
        """/** Valida que las rutas críticas existan. / Validate that critical paths exist. **/"""
        if not self.CATALOG_PATH.exists():
            raise ValueError(f"CATALOG_PATH does not exist: {self.CATALOG_PATH}")
        if self.STORAGE_PATH.exists() and not self.STORAGE_PATH.is_dir():
            raise ValueError(f"STORAGE_PATH is not a directory: {self.STORAGE_PATH}")


def _load_yaml_defaults(path: Path) -> Dict[str, Any]:
    """Lee valores por defecto desde YAML; las variables de entorno tienen prioridad.

    English:
        Read defaults from YAML; environment variables take precedence.
    """
    if not path.exists():
        return {}
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid configuration file {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    defaults: Dict[str, Any] = {}
    for key, value in payload.items():
        name = str(key).upper()
        if f"VIGIA_{name}" in os.environ:
            continue
        defaults[name] = value
    return defaults


def load_config(config_file: Path | None = None, *, check_paths: bool = True) -> VigiaSettings:
    """/** Carga y valida configuración, fallando con detalle. / Load and validate configuration, failing with details. **/"""
    path = config_file or Path(os.getenv("VIGIA_CONFIG_FILE", str(DEFAULT_CONFIG_FILE)))
    try:
        settings = VigiaSettings(**_load_yaml_defaults(path))
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
    if check_paths:
        settings.validate_paths()
    return settings
