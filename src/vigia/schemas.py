# Schemas Module
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

"""Esquemas Pydantic para validar y normalizar envíos de resultados.

Pydantic schemas to validate and normalize result submissions.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

LEGACY_KEYS = {
    "pdCode": "pd_code",
    "pdName": "pd_name",
    "edCode": "ed_code",
    "edName": "ed_name",
    "sequenceNumber": "sequence_number",
    "byParty": "by_party",
}


class InvalidPayload(ValueError):
    """Envío sin ``summary``/``by_party`` o con forma inválida.

    English: Submission missing ``summary``/``by_party`` or malformed.
    """

    def __init__(self, message: str, *, ed_code: Any = None, pd_code: Any = None, sequence_number: Any = None) -> None:
        super().__init__(message)
        self.ed_code = ed_code
        self.pd_code = pd_code
        self.sequence_number = sequence_number


def _code(value: Any) -> Any:
    """Convierte códigos numéricos a texto y recorta espacios."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(int(value)) if float(value).is_integer() else str(value)
    if isinstance(value, str):
        return value.strip()
    return value


class SummarySchema(BaseModel):
    """Conteos de la división y porcentajes derivados.

    English: Division counts and derived percentages.
    """

    model_config = ConfigDict(extra="allow")

    valid: int = Field(default=0, ge=0)
    rejected: int = Field(default=0, ge=0)
    polled: int = Field(default=0, ge=0)
    electors: int = Field(default=0, ge=0)
    percent_valid: float = Field(default=0, ge=0)
    percent_rejected: float = Field(default=0, ge=0)
    percent_polled: float = Field(default=0, ge=0)


class PartyResultSchema(BaseModel):
    """Votos de un partido dentro de un envío.

    English: One party's votes within a submission.
    """

    model_config = ConfigDict(extra="allow")

    party_code: str = Field(min_length=1)
    party_name: Any = None
    candidate: Any = None
    votes: int = Field(default=0, ge=0)
    percentage: float = Field(default=0, ge=0)

    @field_validator("party_code", mode="before")
    @classmethod
    def strip_code(cls, value: Any) -> Any:
        """Normaliza el código de partido. / Normalize the party code."""
        return _code(value)


class ResultSubmission(BaseModel):
    """Envío de resultados de una división.

    Solo ``summary`` y ``by_party`` son obligatorios; el resto de los campos
    (incluidos los desconocidos) se conserva tal cual.

    English:
        Result submission for one division.

        Only ``summary`` and ``by_party`` are required; every other field
        (unknown ones included) is kept as submitted.
    """

    model_config = ConfigDict(extra="allow")

    timestamp: Any = None
    level: Any = None
    ed_code: Optional[str] = None
    ed_name: Any = None
    pd_code: Optional[str] = None
    pd_name: Any = None
    type: Any = None
    sequence_number: Optional[str] = None
    reference: Any = None
    summary: SummarySchema
    by_party: List[PartyResultSchema]

    @field_validator("ed_code", "pd_code", "sequence_number", mode="before")
    @classmethod
    def normalize_codes(cls, value: Any) -> Any:
        """Acepta códigos numéricos y recorta espacios.

        English:
            Accept numeric codes and trim whitespace.
        """
        return _code(value)

    @model_validator(mode="after")
    def party_codes_are_unique(self) -> "ResultSubmission":
        """party_code must be unique within a record."""
        seen: set[str] = set()
        for party in self.by_party:
            if party.party_code in seen:
                raise ValueError(f"duplicate party_code {party.party_code}")
            seen.add(party.party_code)
        return self

    @property
    def dedup_pd_code(self) -> Optional[str]:
        return self.pd_code or None

    @property
    def dedup_sequence_number(self) -> Optional[str]:
        return self.sequence_number or None

    def to_record_fields(self) -> Dict[str, Any]:
        """Campos enviados (sin los ausentes) listos para almacenar.

        English: Submitted fields (omitting absent ones) ready for storage.
        """
        return self.model_dump(exclude_unset=True)


def _parse_payload(data: Any) -> Dict[str, Any]:
    """Parsea payload dict o bytes a dict JSON.

    English: Parse dict or bytes payload into JSON dict.
    """
    if isinstance(data, (bytes, str)):
        try:
            decoded = data.decode("utf-8") if isinstance(data, bytes) else data
        except UnicodeDecodeError as exc:
            raise InvalidPayload("Payload is not valid UTF-8") from exc
        try:
            data = json.loads(decoded)
        except json.JSONDecodeError as exc:
            raise InvalidPayload("Payload is not valid JSON") from exc
    if isinstance(data, dict):
        return dict(data)
    raise InvalidPayload("Payload must be a JSON object")


def _migrate_result(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Migra claves camelCase heredadas a snake_case.

    English: Migrate legacy camelCase keys to snake_case.
    """
    for legacy, current in LEGACY_KEYS.items():
        if legacy in payload and current not in payload:
            payload[current] = payload.pop(legacy)
        elif legacy in payload:
            payload.pop(legacy)
    return payload


def validate_submission(data: Any) -> ResultSubmission:
    """Valida y normaliza un envío de resultados.

    Returns:
        ResultSubmission: Envío validado.

    Raises:
        InvalidPayload: Si falta ``summary``/``by_party`` o la forma es inválida.

    English:
        Validate and normalize a result submission.

    Returns:
        ResultSubmission: Validated submission.

    Raises:
        InvalidPayload: When ``summary``/``by_party`` are missing or malformed.
    """
    payload = _migrate_result(_parse_payload(data))
    context = {
        "ed_code": payload.get("ed_code"),
        "pd_code": payload.get("pd_code"),
        "sequence_number": payload.get("sequence_number"),
    }
    if not isinstance(payload.get("summary"), dict) or not isinstance(payload.get("by_party"), list):
        raise InvalidPayload("Invalid payload: summary object and by_party list are required", **context)
    try:
        return ResultSubmission.model_validate(payload)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'payload'}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidPayload(f"Invalid payload: {details}", **context) from exc
