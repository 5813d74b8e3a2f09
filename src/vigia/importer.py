"""Preparación de archivos JSON de resultados para envío masivo.

English:
    Staging of JSON result files for bulk submission.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List

from .gateway import BatchItem, recalculate_percentages
from .logging import get_logger

logger = get_logger(__name__)

EMPTY_RESULT: Dict[str, Any] = {
    "timestamp": "",
    "level": "",
    "ed_code": "",
    "ed_name": "",
    "pd_code": "",
    "pd_name": "",
    "type": "PRESIDENTIAL-FIRST",
    "sequence_number": "",
    "reference": "",
    "summary": {
        "valid": 0,
        "rejected": 0,
        "polled": 0,
        "electors": 0,
        "percent_valid": 0,
        "percent_rejected": 0,
        "percent_polled": 0,
    },
    "by_party": [],
}

REQUIRED_METADATA = (
    "timestamp",
    "level",
    "ed_code",
    "ed_name",
    "pd_code",
    "pd_name",
    "type",
    "sequence_number",
    "reference",
)


class MalformedImport(ValueError):
    """Archivo de importación que no se puede interpretar.

    English: Import file that cannot be parsed.
    """

    def __init__(self, name: str, reason: str) -> None:
        super().__init__(f"{name}: {reason}")
        self.name = name
        self.reason = reason


@dataclass(frozen=True)
class StagedImport:
    """Resultado de preparar un lote: elementos y errores por archivo.

    English: Outcome of staging a batch: items and per-file errors.
    """

    items: List[BatchItem]
    errors: List[MalformedImport]


def merge_with_template(data: Dict[str, Any]) -> Dict[str, Any]:
    """Completa un resultado importado con los valores vacíos del formulario.

    English: Fill an imported result with the empty form defaults.
    """
    merged = {**copy.deepcopy(EMPTY_RESULT), **data}
    summary = data.get("summary") if isinstance(data.get("summary"), dict) else {}
    merged["summary"] = {**EMPTY_RESULT["summary"], **summary}
    merged["by_party"] = data.get("by_party") if isinstance(data.get("by_party"), list) else []
    return merged


def missing_metadata(payload: Dict[str, Any]) -> List[str]:
    """Campos de metadatos vacíos y si faltan partidos.

    El formulario de carga exige todos los metadatos y al menos un partido.

    English:
        Empty metadata fields, plus ``by_party`` when no party is listed.

        The entry form requires every metadata field and at least one party.
    """
    missing = [key for key in REQUIRED_METADATA if str(payload.get(key, "")).strip() == ""]
    if not payload.get("by_party"):
        missing.append("by_party")
    return missing


def parse_import(name: str, text: str) -> Dict[str, Any]:
    """Parsea un archivo de importación y lo completa con la plantilla.

    Raises:
        MalformedImport: JSON inválido o raíz que no es un objeto.

    English:
        Parse one import file and complete it with the template.
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedImport(name, f"Parse error: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise MalformedImport(name, "Parse error: root must be a JSON object")
    return merge_with_template(data)


def stage_files(paths: Iterable[Path], *, auto_calc: bool = True, strict: bool = False) -> StagedImport:
    """Prepara varios archivos; un archivo inválido no aborta a los demás.

    Args:
        paths: Archivos JSON a preparar.
        auto_calc: Recalcular porcentajes antes de enviar.
        strict: Exigir metadatos completos y al menos un partido.

    English:
        Stage several files; one invalid file does not abort the others.
    """
    items: List[BatchItem] = []
    errors: List[MalformedImport] = []
    for index, path in enumerate(paths):
        item_id = f"{index}-{path.name}"
        try:
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise MalformedImport(path.name, f"Read error: {exc}") from exc
            payload = parse_import(path.name, text)
            if strict:
                missing = missing_metadata(payload)
                if missing:
                    raise MalformedImport(path.name, f"Missing fields: {', '.join(missing)}")
        except MalformedImport as exc:
            errors.append(exc)
            items.append(BatchItem(item_id=item_id, payload=None, name=path.name, status="invalid", error=exc.reason))
            logger.warning("import_malformed", file=path.name, reason=exc.reason)
            continue
        if auto_calc:
            payload = recalculate_percentages(payload)
        items.append(BatchItem(item_id=item_id, payload=payload, name=path.name))
    logger.info("import_staged", items=len(items), invalid=len(errors))
    return StagedImport(items=items, errors=errors)
