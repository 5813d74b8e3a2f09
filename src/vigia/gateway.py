# Gateway Module
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

"""Puerta de entrada de envíos: valida, llama al almacén y traduce resultados.

Submission gateway: validates, calls the store and translates outcomes.
"""

from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .logging import get_logger
from .schemas import InvalidPayload, validate_submission
from .store import ResultStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class GatewayResponse:
    """Respuesta lista para transporte (código HTTP + cuerpo).

    English: Transport-ready response (HTTP status + body).
    """

    status_code: int
    body: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def overridden(self) -> bool:
        return bool(self.body.get("overridden"))


@dataclass(frozen=True)
class SubmissionFailure:
    """Fallo de un elemento en un envío masivo; reintentable por separado.

    English: Per-item failure in a bulk submit; retryable on its own.
    """

    item_id: str
    name: Optional[str]
    cause: str
    status_code: Optional[int] = None
    retryable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BatchItem:
    """Elemento preparado para envío masivo.

    English: Item staged for bulk submission.
    """

    item_id: str
    payload: Optional[Dict[str, Any]]
    name: Optional[str] = None
    status: str = "pending"
    error: Optional[str] = None
    record_id: Optional[str] = None


@dataclass
class BatchReport:
    """Resumen de un envío masivo. / Bulk submission summary."""

    items: List[BatchItem] = field(default_factory=list)
    failures: List[SubmissionFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.status == "success")

    @property
    def failed(self) -> int:
        return len(self.failures)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [
                {
                    "item_id": item.item_id,
                    "name": item.name,
                    "status": item.status,
                    "record_id": item.record_id,
                    "error": item.error,
                }
                for item in self.items
            ],
            "succeeded": self.succeeded,
            "failed": self.failed,
            "failures": [failure.to_dict() for failure in self.failures],
        }


def _pct(numerator: Any, denominator: Any) -> Optional[float]:
    try:
        num = float(numerator or 0)
        den = float(denominator or 0)
    except (TypeError, ValueError):
        return None
    if not den:
        return None
    return round(num / den * 100, 2)


def recalculate_percentages(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Recalcula porcentajes de partidos y del resumen.

    - ``percentage`` de cada partido = votos / suma de votos × 100 (2 decimales).
    - ``valid`` toma la suma de votos si no viene informado.
    - ``percent_valid`` y ``percent_rejected`` sobre ``polled``; ``percent_polled``
      sobre ``electors``; solo cuando el denominador no es cero.

    English:
        Recompute party and summary percentages, as described above.
    """
    result = copy.deepcopy(dict(payload))
    parties = result.get("by_party") if isinstance(result.get("by_party"), list) else []
    total_votes = 0
    for party in parties:
        try:
            total_votes += float(party.get("votes") or 0)
        except (AttributeError, TypeError, ValueError):
            continue
    updated_parties = []
    for party in parties:
        if not isinstance(party, dict):
            updated_parties.append(party)
            continue
        share = _pct(party.get("votes"), total_votes) if total_votes else 0
        updated_parties.append({**party, "percentage": share if share is not None else 0})
    if parties:
        result["by_party"] = updated_parties

    raw_summary = result.get("summary")
    if not isinstance(raw_summary, dict):
        return result
    summary = dict(raw_summary)
    if total_votes and not summary.get("valid"):
        summary["valid"] = int(total_votes)
    for key, numerator, denominator in (
        ("percent_valid", "valid", "polled"),
        ("percent_rejected", "rejected", "polled"),
        ("percent_polled", "polled", "electors"),
    ):
        value = _pct(summary.get(numerator), summary.get(denominator))
        if value is not None:
            summary[key] = value
    result["summary"] = summary
    return result


class SubmissionGateway:
    """Valida envíos entrantes y los traduce a respuestas.

    No realiza agregación.

    English:
        Validates inbound submissions and maps them to responses.

        Performs no aggregation.
    """

    def __init__(self, store: ResultStore) -> None:
        self._store = store

    @property
    def store(self) -> ResultStore:
        return self._store

    def submit(self, payload: Any) -> GatewayResponse:
        """Envía un resultado: 201 creado, 200 sobrescrito, 400 inválido.

        English: Submit one result: 201 created, 200 overridden, 400 invalid.
        """
        try:
            submission = validate_submission(payload)
        except InvalidPayload as exc:
            self._store.record_rejection(exc)
            return GatewayResponse(status_code=400, body={"error": str(exc)})
        outcome = self._store.submit(submission)
        body = {**outcome.record, "overridden": outcome.is_override}
        return GatewayResponse(status_code=200 if outcome.is_override else 201, body=body)

    def submit_batch(self, items: Iterable[BatchItem]) -> BatchReport:
        """Envía cada elemento; un fallo no detiene a los demás.

        English: Submit every item; one failure does not stop the rest.
        """
        return run_batch(items, self.submit)


class SubmissionTransportError(RuntimeError):
    """Fallo de transporte al enviar un elemento (reintentable).

    English: Transport failure while sending one item (retryable).
    """


def run_batch(items: Iterable[BatchItem], send: Callable[[Dict[str, Any]], GatewayResponse]) -> BatchReport:
    """Procesa todos los elementos con ``send`` y captura fallos por elemento.

    Los elementos sin payload (importación fallida) se marcan ``invalid`` y no
    son reintentables; un 400 tampoco lo es; los fallos de transporte y los 5xx
    sí lo son.

    English:
        Process every item with ``send`` and capture per-item failures.

        Items without payload (failed import) are marked ``invalid`` and are
        not retryable; neither is a 400; transport failures and 5xx are.
    """
    report = BatchReport()
    for item in items:
        report.items.append(item)
        if item.payload is None:
            item.status = "invalid"
            item.error = item.error or "No payload"
            report.failures.append(SubmissionFailure(item.item_id, item.name, item.error, retryable=False))
            continue
        item.status = "uploading"
        try:
            response = send(item.payload)
        except SubmissionTransportError as exc:
            item.status = "error"
            item.error = str(exc) or "Transport error"
            report.failures.append(SubmissionFailure(item.item_id, item.name, item.error, retryable=True))
            logger.warning("batch_item_transport_failed", item_id=item.item_id, name=item.name, error=item.error)
            continue
        if response.ok:
            item.status = "success"
            item.error = None
            item.record_id = response.body.get("id")
            continue
        item.status = "error"
        item.error = str(response.body.get("error", "Error"))
        report.failures.append(
            SubmissionFailure(
                item.item_id,
                item.name,
                item.error,
                status_code=response.status_code,
                retryable=response.status_code >= 500,
            )
        )
        logger.warning("batch_item_failed", item_id=item.item_id, name=item.name, error=item.error)
    logger.info("batch_submitted", items=len(report.items), succeeded=report.succeeded, failed=report.failed)
    return report


def retry_failed(report: BatchReport, send: Callable[[Dict[str, Any]], GatewayResponse]) -> BatchReport:
    """Reintenta solo los elementos fallidos y reintentables.

    English: Retry only failed, retryable items.
    """
    retryable = {failure.item_id for failure in report.failures if failure.retryable}
    return run_batch((item for item in report.items if item.item_id in retryable), send)
