"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/vigia/aggregation.py`.
Vistas derivadas calculadas desde cero a partir de (catálogo, registros):
último resultado por división, agregados por distrito, totales de la isla,
ganadores, filas por división y series de tendencia.

Componentes detectados:
  - PartyTotal
  - DistrictRollup
  - DistrictWinner
  - DivisionRow
  - TrendPoint
  - TrendSeries
  - Dashboard
  - latest_per_division
  - district_rollups
  - island_totals
  - district_winners
  - division_rows
  - trend_series
  - completion_counts
  - build_dashboard

Notas:
- Funciones puras y deterministas: misma entrada, misma salida.
- Entrada vacía produce resultados vacíos o en cero, nunca excepciones.
- Empates entre partidos: gana el primero encontrado en la suma.

======================== ENGLISH ========================
File: `src/vigia/aggregation.py`.
Derived views recomputed from scratch out of (catalog, records): latest
result per division, district rollups, island totals, winners, division rows
and trend series.

Detected components:
  - (see above)

Notes:
- Pure, deterministic functions: same input, same output.
- Empty input yields empty or zero results, never exceptions.
- Party ties: the first one encountered during summation wins.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .catalog import ReferenceCatalog

Record = Mapping[str, Any]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class PartyTotal:
    """Votos sumados de un partido. / Summed votes for one party."""

    party_code: str
    party_name: Optional[str]
    votes: int


@dataclass(frozen=True)
class DistrictRollup:
    """Agregado de un distrito a partir de sus divisiones reportadas.

    Attributes:
        ed_code (str): Código del distrito.
        ed_name (str): Nombre del distrito.
        division_codes (Tuple[str, ...]): Divisiones del catálogo.
        reported_divisions (Tuple[str, ...]): Divisiones con resultado.
        total_divisions (int): Cantidad de divisiones del catálogo.
        coverage_ratio (float): reportadas / total (0 sin divisiones).
        complete (bool): total > 0 y todas reportadas.
        parties (Tuple[PartyTotal, ...]): Votos por partido, descendente.
        top_party (Optional[str]): Partido líder.
        top_votes (int): Votos del partido líder.

    English:
        District rollup built from its reported divisions.
    """

    ed_code: str
    ed_name: str
    division_codes: Tuple[str, ...]
    reported_divisions: Tuple[str, ...]
    total_divisions: int
    coverage_ratio: float
    complete: bool
    parties: Tuple[PartyTotal, ...]
    top_party: Optional[str]
    top_votes: int

    @property
    def reported_count(self) -> int:
        return len(self.reported_divisions)

    @property
    def total_votes(self) -> int:
        return sum(party.votes for party in self.parties)

    @property
    def parties_count(self) -> int:
        return len(self.parties)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["reported_count"] = self.reported_count
        payload["total_votes"] = self.total_votes
        payload["parties_count"] = self.parties_count
        return payload


@dataclass(frozen=True)
class DistrictWinner:
    """Partido líder de un distrito. / Leading party of a district."""

    ed_code: str
    ed_name: str
    party_code: str
    votes: int
    complete: bool
    coverage_ratio: float


@dataclass(frozen=True)
class DivisionRow:
    """Fila por división con líder y margen.

    ``margin`` es la diferencia con el segundo (o los votos del líder si no
    tiene rival); ``margin_pct`` es ``margin / votos del líder``.

    English:
        Per-division row with leader and margin.
    """

    id: Optional[str]
    ed_code: Optional[str]
    ed_name: Optional[str]
    pd_code: Optional[str]
    pd_name: Optional[str]
    total_votes: int
    lead_party: Optional[str]
    lead_votes: int
    margin: int
    margin_pct: float


@dataclass(frozen=True)
class TrendPoint:
    """Estado acumulado tras el registro número ``step``.

    English: Cumulative state after record number ``step``.
    """

    step: int
    record_id: Optional[str]
    pd_code: Optional[str]
    party_totals: Dict[str, int]
    districts_complete: int


@dataclass(frozen=True)
class TrendSeries:
    """Serie temporal de votos acumulados y distritos completos.

    English: Time series of cumulative votes and complete districts.
    """

    points: Tuple[TrendPoint, ...] = ()

    def party_series(self) -> Dict[str, List[Tuple[int, int]]]:
        """Puntos ``(step, acumulado)`` por partido desde su primera aparición.

        English: ``(step, cumulative)`` points per party from its first appearance.
        """
        series: Dict[str, List[Tuple[int, int]]] = {}
        for point in self.points:
            for code, votes in point.party_totals.items():
                series.setdefault(code, []).append((point.step, votes))
        return series

    def coverage_timeline(self) -> List[Tuple[int, int]]:
        return [(point.step, point.districts_complete) for point in self.points]


@dataclass(frozen=True)
class Dashboard:
    """Todas las vistas derivadas de un snapshot. / Every view derived from one snapshot."""

    latest_result: Optional[Dict[str, Any]]
    latest_per_division: Tuple[Dict[str, Any], ...]
    district_rollups: Tuple[DistrictRollup, ...]
    island_totals: Tuple[PartyTotal, ...]
    district_winners: Tuple[DistrictWinner, ...]
    division_rows: Tuple[DivisionRow, ...]
    trend: TrendSeries
    districts_complete: int
    districts_total: int
    records: int = field(default=0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records": self.records,
            "latest_result": self.latest_result,
            "latest_per_division": list(self.latest_per_division),
            "district_rollups": [rollup.to_dict() for rollup in self.district_rollups],
            "island_totals": [asdict(party) for party in self.island_totals],
            "district_winners": [asdict(winner) for winner in self.district_winners],
            "division_rows": [asdict(row) for row in self.division_rows],
            "trend": [asdict(point) for point in self.trend.points],
            "districts_complete": self.districts_complete,
            "districts_total": self.districts_total,
        }


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _votes(value: Any) -> int:
    """Votos como entero no negativo; valores no numéricos cuentan como cero."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


def _created_at(record: Record) -> datetime:
    raw = record.get("createdAt")
    if not isinstance(raw, str) or not raw:
        return _EPOCH
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parties(record: Record) -> List[Mapping[str, Any]]:
    by_party = record.get("by_party")
    if not isinstance(by_party, list):
        return []
    return [party for party in by_party if isinstance(party, Mapping) and _text(party.get("party_code"))]


def _sum_parties(records: Iterable[Record]) -> List[PartyTotal]:
    """Suma votos por partido conservando el orden de primera aparición."""
    totals: Dict[str, List[Any]] = {}
    for record in records:
        for party in _parties(record):
            code = _text(party.get("party_code"))
            entry = totals.setdefault(code, [party.get("party_name"), 0])
            entry[1] += _votes(party.get("votes"))
    return [PartyTotal(code, name, votes) for code, (name, votes) in totals.items()]


def _rank(parties: Sequence[PartyTotal]) -> Tuple[PartyTotal, ...]:
    # sorted() is stable: equal votes keep first-encountered order.
    return tuple(sorted(parties, key=lambda party: party.votes, reverse=True))


def arrival_order(records: Sequence[Record]) -> List[Record]:
    """Registros ordenados por ``createdAt``, estable respecto al snapshot.

    English: Records ordered by ``createdAt``, stable to snapshot order.
    """
    return sorted(records, key=_created_at)


# ---------------------------------------------------------------------------
# Vistas / Views
# ---------------------------------------------------------------------------


def latest_per_division(records: Sequence[Record]) -> List[Record]:
    """Registro más reciente por ``pd_code``.

    Gana el mayor ``createdAt``; en empate gana el que aparece después en el
    snapshot. Registros sin ``pd_code`` se ignoran. El orden de salida es el de
    primera aparición de cada división.

    English:
        Latest record per ``pd_code``.

        Greatest ``createdAt`` wins; on ties the later snapshot entry wins.
        Records without ``pd_code`` are ignored. Output follows first
        appearance of each division.
    """
    latest: Dict[str, Record] = {}
    for record in records:
        pd_code = _text(record.get("pd_code"))
        if pd_code is None:
            continue
        previous = latest.get(pd_code)
        if previous is None or _created_at(record) >= _created_at(previous):
            latest[pd_code] = record
    return list(latest.values())


def district_rollups(catalog: ReferenceCatalog, latest: Sequence[Record]) -> List[DistrictRollup]:
    """Agregados por distrito en orden de catálogo.

    Solo cuentan las divisiones listadas en el catálogo para el distrito.

    English:
        District rollups in catalog order.

        Only divisions listed in the catalog for the district count.
    """
    by_division = {_text(record.get("pd_code")): record for record in latest}
    rollups: List[DistrictRollup] = []
    for district in catalog:
        codes = district.division_codes
        reported = [by_division[code] for code in codes if code in by_division]
        total = len(codes)
        parties = _rank(_sum_parties(reported))
        top = parties[0] if parties else None
        rollups.append(
            DistrictRollup(
                ed_code=district.id,
                ed_name=district.name,
                division_codes=codes,
                reported_divisions=tuple(_text(record.get("pd_code")) for record in reported),
                total_divisions=total,
                coverage_ratio=len(reported) / total if total else 0.0,
                complete=total > 0 and len(reported) == total,
                parties=parties,
                top_party=top.party_code if top else None,
                top_votes=top.votes if top else 0,
            )
        )
    return rollups


def island_totals(rollups: Sequence[DistrictRollup]) -> List[PartyTotal]:
    """Votos por partido sumados en todos los distritos, descendente.

    English: Party votes summed across all districts, descending.
    """
    totals: Dict[str, List[Any]] = {}
    for rollup in rollups:
        for party in rollup.parties:
            entry = totals.setdefault(party.party_code, [party.party_name, 0])
            entry[1] += party.votes
    return list(_rank([PartyTotal(code, name, votes) for code, (name, votes) in totals.items()]))


def district_winners(rollups: Sequence[DistrictRollup]) -> List[DistrictWinner]:
    return [
        DistrictWinner(
            ed_code=rollup.ed_code,
            ed_name=rollup.ed_name,
            party_code=rollup.top_party,
            votes=rollup.top_votes,
            complete=rollup.complete,
            coverage_ratio=rollup.coverage_ratio,
        )
        for rollup in rollups
        if rollup.top_party
    ]


def division_rows(latest: Sequence[Record]) -> List[DivisionRow]:
    """Filas por división con partido líder y margen.

    English: Per-division rows with leading party and margin.
    """
    rows: List[DivisionRow] = []
    for record in latest:
        ranked = sorted(_parties(record), key=lambda party: _votes(party.get("votes")), reverse=True)
        lead = ranked[0] if ranked else None
        second = ranked[1] if len(ranked) > 1 else None
        lead_votes = _votes(lead.get("votes")) if lead else 0
        if second is not None:
            margin = lead_votes - _votes(second.get("votes"))
            margin_pct = margin / (lead_votes or 1)
        else:
            margin = lead_votes
            margin_pct = 1.0
        rows.append(
            DivisionRow(
                id=_text(record.get("id")),
                ed_code=_text(record.get("ed_code")),
                ed_name=record.get("ed_name"),
                pd_code=_text(record.get("pd_code")),
                pd_name=record.get("pd_name"),
                total_votes=sum(_votes(party.get("votes")) for party in ranked),
                lead_party=_text(lead.get("party_code")) if lead else None,
                lead_votes=lead_votes,
                margin=margin,
                margin_pct=margin_pct,
            )
        )
    return rows


def trend_series(catalog: ReferenceCatalog, records: Sequence[Record]) -> TrendSeries:
    """Votos acumulados por partido y distritos completos, registro a registro.

    Solo entra el registro vigente de cada división del catálogo, así que el
    último punto coincide con los totales de la isla y refleja sobrescrituras
    incluso a la baja.

    English:
        Cumulative party votes and complete districts, record by record.

        Only the current record of each catalog division is included, so the
        last point matches the island totals and reflects overrides, downward
        ones included.
    """
    current = [
        record
        for record in latest_per_division(records)
        if catalog.is_known_division(_text(record.get("pd_code")))
    ]
    cumulative: Dict[str, int] = {}
    reported: Dict[str, set] = {}
    complete: set = set()
    points: List[TrendPoint] = []
    for step, record in enumerate(arrival_order(current), start=1):
        for party in _parties(record):
            code = _text(party.get("party_code"))
            cumulative[code] = cumulative.get(code, 0) + _votes(party.get("votes"))
        pd_code = _text(record.get("pd_code"))
        district_id = catalog.district_of(pd_code)
        seen = reported.setdefault(district_id, set())
        seen.add(pd_code)
        district = catalog.get(district_id)
        if district is not None and len(seen) == len(district.divisions):
            complete.add(district_id)
        points.append(
            TrendPoint(
                step=step,
                record_id=_text(record.get("id")),
                pd_code=pd_code,
                party_totals=dict(cumulative),
                districts_complete=len(complete),
            )
        )
    return TrendSeries(points=tuple(points))


def completion_counts(rollups: Sequence[DistrictRollup]) -> Tuple[int, int]:
    """(distritos completos, distritos totales). / (complete districts, total districts)."""
    return sum(1 for rollup in rollups if rollup.complete), len(rollups)


def latest_result(records: Sequence[Record]) -> Optional[Record]:
    """Registro más reciente por ``createdAt`` (el último en empate).

    English: Most recent record by ``createdAt`` (the last one on ties).
    """
    newest: Optional[Record] = None
    for record in records:
        if newest is None or _created_at(record) >= _created_at(newest):
            newest = record
    return newest


def build_dashboard(catalog: ReferenceCatalog, records: Sequence[Record]) -> Dashboard:
    """Calcula todas las vistas a partir de un snapshot.

    English: Compute every view from one snapshot.
    """
    latest = latest_per_division(records)
    rollups = district_rollups(catalog, latest)
    done, total = completion_counts(rollups)
    newest = latest_result(records)
    return Dashboard(
        latest_result=dict(newest) if newest is not None else None,
        latest_per_division=tuple(dict(record) for record in latest),
        district_rollups=tuple(rollups),
        island_totals=tuple(island_totals(rollups)),
        district_winners=tuple(district_winners(rollups)),
        division_rows=tuple(division_rows(latest)),
        trend=trend_series(catalog, records),
        districts_complete=done,
        districts_total=total,
        records=len(records),
    )
