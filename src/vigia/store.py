"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/vigia/store.py`.
Almacén autoritativo en memoria de resultados por división. Decide si un envío
es un registro nuevo o una sobrescritura (clave `pd_code`, luego
`sequence_number`), asigna identidad y marcas de tiempo, y entrega cada cambio
al publicador.

Componentes detectados:
  - AuditEntry
  - AuditLog
  - SubmitOutcome
  - ResultStore

Notas:
- Toda mutación ocurre bajo un único candado: resolver clave, aplicar,
  encolar evento.
- Los registros nunca se eliminan; la colección interna nunca se expone.

======================== ENGLISH ========================
File: `src/vigia/store.py`.
Authoritative in-memory store of division results. Decides whether a
submission is a new record or an override (`pd_code` key, then
`sequence_number`), assigns identity and timestamps, and hands every change to
the publisher.

Detected components:
  - AuditEntry
  - AuditLog
  - SubmitOutcome
  - ResultStore

Notes:
- Every mutation runs under a single lock: resolve key, apply, enqueue event.
- Records are never deleted; the internal collection is never exposed.
"""

# Store Module
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

from __future__ import annotations

import copy
import threading
import uuid
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Union

from .logging import bind_context, get_logger
from .publisher import ChangePublisher, EventKind, ResultEvent, Subscription, SubscriptionMode
from .schemas import InvalidPayload, ResultSubmission, validate_submission

logger = get_logger(__name__)

DEFAULT_AUDIT_SIZE = 10000
STORE_OWNED_FIELDS = frozenset({"id", "createdAt", "updatedAt"})


def utc_now_iso() -> str:
    """Marca de tiempo ISO-8601 UTC con milisegundos y sufijo ``Z``.

    English: ISO-8601 UTC timestamp with milliseconds and ``Z`` suffix.
    """
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class AuditEntry:
    """Entrada de la bitácora operativa de envíos.

    Attributes:
        timestamp (str): Momento del envío (UTC).
        outcome (str): ``created``, ``overridden`` o ``rejected``.
        ed_code (Optional[str]): Código de distrito enviado.
        pd_code (Optional[str]): Código de división enviado.
        sequence_number (Optional[str]): Número de secuencia enviado.
        record_id (Optional[str]): Registro afectado, si hubo.
        error (Optional[str]): Motivo del rechazo, si hubo.
        sequence (Optional[int]): Número de mutación del evento, si hubo.

    English:
        Operational submission log entry.

    Attributes:
        timestamp (str): Submission time (UTC).
        outcome (str): ``created``, ``overridden`` or ``rejected``.
        ed_code (Optional[str]): Submitted district code.
        pd_code (Optional[str]): Submitted division code.
        sequence_number (Optional[str]): Submitted sequence number.
        record_id (Optional[str]): Affected record, if any.
        error (Optional[str]): Rejection reason, if any.
        sequence (Optional[int]): Event mutation number, if any.
    """

    timestamp: str
    outcome: str
    ed_code: Optional[str] = None
    pd_code: Optional[str] = None
    sequence_number: Optional[str] = None
    record_id: Optional[str] = None
    error: Optional[str] = None
    sequence: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AuditLog:
    """Bitácora acotada y segura entre hilos.

    English: Bounded, thread-safe audit log.
    """

    def __init__(self, max_entries: int = DEFAULT_AUDIT_SIZE) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._entries: Deque[AuditEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def entries(self, limit: Optional[int] = None) -> List[AuditEntry]:
        """Entradas más recientes en orden cronológico.

        English: Most recent entries in chronological order.
        """
        with self._lock:
            items = list(self._entries)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass(frozen=True)
class SubmitOutcome:
    """Resultado de ``ResultStore.submit``.

    English: Result of ``ResultStore.submit``.
    """

    record: Dict[str, Any]
    is_override: bool
    event: ResultEvent


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ResultStore:
    """Almacén autoritativo de registros de resultados.

    Solo expone ``submit``, ``snapshot``, ``subscribe`` y lecturas puntuales;
    cada lectura devuelve copias.

    English:
        Authoritative result record store.

        Only ``submit``, ``snapshot``, ``subscribe`` and point reads are
        exposed; every read returns copies.
    """

    def __init__(
        self,
        publisher: Optional[ChangePublisher] = None,
        *,
        audit_size: int = DEFAULT_AUDIT_SIZE,
        clock: Callable[[], str] = utc_now_iso,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._publisher = publisher or ChangePublisher()
        self._audit = AuditLog(audit_size)
        self._clock = clock
        self._id_factory = id_factory
        self._lock = threading.RLock()
        self._records: List[Dict[str, Any]] = []
        self._by_pd_code: Dict[str, int] = {}
        self._by_id: Dict[str, int] = {}
        self._sequence = 0

    @property
    def publisher(self) -> ChangePublisher:
        return self._publisher

    @property
    def audit(self) -> AuditLog:
        return self._audit

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # ------------------------------------------------------------------
    # Lecturas / Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> List[Dict[str, Any]]:
        """Copia profunda de la colección vigente, en orden de inserción.

        English: Deep copy of the current collection, in insertion order.
        """
        with self._lock:
            return copy.deepcopy(self._records)

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            position = self._by_id.get(record_id)
            if position is None:
                return None
            return copy.deepcopy(self._records[position])

    def subscribe(self, mode: SubscriptionMode = SubscriptionMode.BOTH) -> Subscription:
        """Adjunta un suscriptor con el snapshot vigente de forma atómica.

        English: Atomically attach a subscriber with the current snapshot.
        """
        with self._lock:
            return self._publisher.attach(copy.deepcopy(self._records), self._sequence, mode)

    def unsubscribe(self, subscription: Subscription) -> None:
        self._publisher.detach(subscription)

    # ------------------------------------------------------------------
    # Escritura / Write path
    # ------------------------------------------------------------------

    def submit(self, payload: Union[ResultSubmission, Mapping[str, Any], bytes, str]) -> SubmitOutcome:
        """Inserta o sobrescribe un resultado.

        Args:
            payload: Envío validado o payload crudo.

        Returns:
            SubmitOutcome: Registro resultante, bandera de sobrescritura y evento.

        Raises:
            InvalidPayload: Si el payload no supera la validación.

        English:
            Insert or override a result.

        Args:
            payload: Validated submission or raw payload.

        Returns:
            SubmitOutcome: Resulting record, override flag and event.

        Raises:
            InvalidPayload: When the payload fails validation.
        """
        if isinstance(payload, ResultSubmission):
            submission = payload
        else:
            try:
                submission = validate_submission(payload)
            except InvalidPayload as exc:
                self.record_rejection(exc)
                raise

        fields = submission.to_record_fields()
        pd_code = submission.dedup_pd_code
        sequence_number = submission.dedup_sequence_number

        with self._lock:
            position = self._resolve(pd_code, sequence_number)
            now = self._clock()
            if position is None:
                record = self._insert(fields, now)
                kind = EventKind.CREATED
            else:
                record = self._override(position, fields, now)
                kind = EventKind.OVERRIDDEN
            self._sequence += 1
            event = ResultEvent(kind=kind, record=copy.deepcopy(record), sequence=self._sequence)
            self._publisher.publish(event, lambda: copy.deepcopy(self._records))
            # Audit order follows event.sequence.
            self._audit.append(
                AuditEntry(
                    timestamp=now,
                    outcome=kind.value,
                    ed_code=_as_text(record.get("ed_code")),
                    pd_code=pd_code,
                    sequence_number=sequence_number,
                    record_id=record["id"],
                    sequence=event.sequence,
                )
            )

        is_override = kind is EventKind.OVERRIDDEN
        bind_context(logger, record_id=record["id"], ed_code=_as_text(record.get("ed_code")), pd_code=pd_code).info(
            "result_overridden" if is_override else "result_created",
            sequence_number=sequence_number or "-",
            sequence=event.sequence,
        )
        return SubmitOutcome(record=copy.deepcopy(record), is_override=is_override, event=event)

    def record_rejection(self, exc: InvalidPayload) -> None:
        """Registra un envío rechazado en la bitácora.

        English: Record a rejected submission in the audit log.
        """
        entry = AuditEntry(
            timestamp=self._clock(),
            outcome="rejected",
            ed_code=_as_text(exc.ed_code),
            pd_code=_as_text(exc.pd_code),
            sequence_number=_as_text(exc.sequence_number),
            error=str(exc),
        )
        self._audit.append(entry)
        logger.warning(
            "result_rejected",
            ed_code=entry.ed_code or "-",
            pd_code=entry.pd_code or "-",
            sequence_number=entry.sequence_number or "-",
            error=entry.error,
        )

    def _resolve(self, pd_code: Optional[str], sequence_number: Optional[str]) -> Optional[int]:
        """Posición del registro a sobrescribir, o None para insertar.

        Prioridad: ``pd_code``; si no hay coincidencia, ``sequence_number``.
        La búsqueda por secuencia nunca cambia la división de un registro que
        ya tiene otro ``pd_code``.

        English:
            Position of the record to override, or None to insert.

            Priority: ``pd_code``; without a match, ``sequence_number``. The
            sequence lookup never moves a record that already carries a
            different ``pd_code``.
        """
        if pd_code:
            position = self._by_pd_code.get(pd_code)
            if position is not None:
                return position
        if sequence_number:
            for position, record in enumerate(self._records):
                if _as_text(record.get("sequence_number")) != sequence_number:
                    continue
                existing_pd = _as_text(record.get("pd_code"))
                if pd_code and existing_pd and existing_pd != pd_code:
                    continue
                return position
        return None

    def _insert(self, fields: Dict[str, Any], now: str) -> Dict[str, Any]:
        record: Dict[str, Any] = {"id": self._id_factory(), "createdAt": now}
        record.update({key: value for key, value in fields.items() if key not in STORE_OWNED_FIELDS})
        self._records.append(record)
        position = len(self._records) - 1
        self._by_id[record["id"]] = position
        pd_code = _as_text(record.get("pd_code"))
        if pd_code:
            self._by_pd_code[pd_code] = position
        return record

    def _override(self, position: int, fields: Dict[str, Any], now: str) -> Dict[str, Any]:
        existing = self._records[position]
        updated = {**existing, **{key: value for key, value in fields.items() if key not in STORE_OWNED_FIELDS}}
        updated["updatedAt"] = now
        existing_pd = _as_text(existing.get("pd_code"))
        if existing_pd:
            updated["pd_code"] = existing["pd_code"]
        self._records[position] = updated
        new_pd = _as_text(updated.get("pd_code"))
        if new_pd and new_pd not in self._by_pd_code:
            self._by_pd_code[new_pd] = position
        return updated
