# Catalog Module
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

"""Catálogo de referencia de distritos y divisiones electorales.

Reference catalog of districts and polling divisions.
"""

from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .logging import get_logger

logger = get_logger(__name__)


class CatalogError(ValueError):
    """Catálogo ausente, ilegible o inválido.

    English: Missing, unreadable or invalid catalog.
    """


@dataclass(frozen=True)
class Division:
    """División electoral (unidad de reporte).

    Attributes:
        id (str): Código de la división (``pd_code``).
        name (str): Nombre para mostrar.

    English:
        Polling division (reporting unit).

    Attributes:
        id (str): Division code (``pd_code``).
        name (str): Display name.
    """

    id: str
    name: str


@dataclass(frozen=True)
class District:
    """Distrito electoral con sus divisiones ordenadas.

    Attributes:
        id (str): Código del distrito (``ed_code``).
        name (str): Nombre para mostrar.
        divisions (Tuple[Division, ...]): Divisiones en orden de catálogo.
        raw_name (Any): Nombre tal como fue cargado (texto o mapa por idioma).

    English:
        Electoral district with its ordered divisions.

    Attributes:
        id (str): District code (``ed_code``).
        name (str): Display name.
        divisions (Tuple[Division, ...]): Divisions in catalog order.
        raw_name (Any): Name as loaded (text or per-language mapping).
    """

    id: str
    name: str
    divisions: Tuple[Division, ...]
    raw_name: Any = None

    @property
    def division_codes(self) -> Tuple[str, ...]:
        return tuple(division.id for division in self.divisions)


class _DivisionSchema(BaseModel):
    id: str = Field(min_length=1)
    name: Any = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        """Acepta códigos numéricos. / Accept numeric codes."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value.strip() if isinstance(value, str) else value


class _DistrictSchema(BaseModel):
    id: str = Field(min_length=1)
    name: Any = None
    divisions: List[_DivisionSchema] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        """Acepta códigos numéricos. / Accept numeric codes."""
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value.strip() if isinstance(value, str) else value

    @model_validator(mode="after")
    def divisions_are_unique(self) -> "_DistrictSchema":
        """Divisions must be unique within a district."""
        seen: set[str] = set()
        for division in self.divisions:
            if division.id in seen:
                raise ValueError(f"duplicate division {division.id} in district {self.id}")
            seen.add(division.id)
        return self


def display_name(raw_name: Any, fallback: str) -> str:
    """Resuelve el nombre visible: ``en``, luego texto plano, luego el código.

    English: Resolve the display name: ``en``, then plain text, then the code.
    """
    if isinstance(raw_name, Mapping):
        english = raw_name.get("en")
        if isinstance(english, str) and english.strip():
            return english
        return fallback
    if isinstance(raw_name, str) and raw_name.strip():
        return raw_name
    return fallback


class ReferenceCatalog:
    """Catálogo inmutable distrito → divisiones.

    English: Immutable district → divisions catalog.
    """

    def __init__(self, districts: Sequence[District], raw: Optional[List[Dict[str, Any]]] = None) -> None:
        seen: set[str] = set()
        for district in districts:
            if district.id in seen:
                raise CatalogError(f"duplicate district {district.id}")
            seen.add(district.id)
        self._districts: Tuple[District, ...] = tuple(districts)
        self._by_id: Dict[str, District] = {district.id: district for district in self._districts}
        self._district_of: Dict[str, str] = {}
        for district in self._districts:
            for code in district.division_codes:
                self._district_of.setdefault(code, district.id)
        self._raw = raw if raw is not None else [_district_to_raw(district) for district in self._districts]

    def __iter__(self) -> Iterator[District]:
        return iter(self._districts)

    def __len__(self) -> int:
        return len(self._districts)

    @property
    def districts(self) -> Tuple[District, ...]:
        return self._districts

    def get(self, district_id: str) -> Optional[District]:
        return self._by_id.get(district_id)

    def district_of(self, pd_code: str) -> Optional[str]:
        """Distrito al que pertenece una división, o None si es fantasma.

        English: District owning a division, or None when it is a phantom.
        """
        return self._district_of.get(pd_code)

    def is_known_division(self, pd_code: str) -> bool:
        return pd_code in self._district_of

    def as_json(self) -> List[Dict[str, Any]]:
        """Devuelve el catálogo tal como fue cargado. / Return the catalog as loaded."""
        return copy.deepcopy(self._raw)

    @classmethod
    def from_payload(cls, payload: Any) -> "ReferenceCatalog":
        """Construye el catálogo desde la lista JSON de distritos.

        English: Build the catalog from the JSON list of districts.
        """
        if not isinstance(payload, list):
            raise CatalogError("Catalog must be a JSON list of districts")
        districts: List[District] = []
        raw: List[Dict[str, Any]] = []
        for index, item in enumerate(payload):
            try:
                schema = _DistrictSchema.model_validate(item)
            except ValidationError as exc:
                raise CatalogError(f"Invalid district at index {index}: {exc}") from exc
            divisions = tuple(
                Division(id=division.id, name=display_name(division.name, division.id))
                for division in schema.divisions
            )
            districts.append(
                District(
                    id=schema.id,
                    name=display_name(schema.name, schema.id),
                    divisions=divisions,
                    raw_name=schema.name,
                )
            )
            raw.append(item)
        return cls(districts, raw=raw)


def _district_to_raw(district: District) -> Dict[str, Any]:
    return {
        "id": district.id,
        "name": district.raw_name if district.raw_name is not None else district.name,
        "divisions": [{"id": division.id, "name": division.name} for division in district.divisions],
    }


def load_catalog(path: Path) -> ReferenceCatalog:
    """Carga el catálogo una sola vez al iniciar el proceso.

    Args:
        path (Path): Ruta al archivo JSON de distritos.

    Returns:
        ReferenceCatalog: Catálogo inmutable.

    English:
        Load the catalog once at process start.

    Args:
        path (Path): Path to the districts JSON file.

    Returns:
        ReferenceCatalog: Immutable catalog.
    """
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise CatalogError(f"Cannot read catalog {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise CatalogError(f"Catalog {path} is not valid JSON: {exc}") from exc
    catalog = ReferenceCatalog.from_payload(payload)
    logger.info(
        "catalog_loaded",
        path=str(path),
        districts=len(catalog),
        divisions=sum(len(district.divisions) for district in catalog),
    )
    return catalog
