"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `conftest.py`.
Fixtures compartidas de la suite de Vigía: bloqueo de red, catálogo de
referencia y almacén con reloj determinista.

Componentes detectados:
  - block_network
  - catalog_payload
  - catalog
  - store

======================== ENGLISH ========================
File: `conftest.py`.
Shared fixtures for the Vigía suite: network blocking, reference catalog and
a store with a deterministic clock.

Detected components:
  - block_network
  - catalog_payload
  - catalog
  - store
"""

from __future__ import annotations

import itertools
import socket
from typing import Any, Dict, List

import pytest

from vigia.catalog import ReferenceCatalog
from vigia.store import ResultStore


@pytest.fixture(autouse=True)
def block_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Impide conexiones de red reales en tests.

    English:
        Prevents real network connections in tests.
    """

    def guarded_connect(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    def guarded_create_connection(*args: Any, **kwargs: Any) -> None:
        raise RuntimeError("Network access is disabled during tests.")

    monkeypatch.setattr(socket.socket, "connect", guarded_connect, raising=True)
    monkeypatch.setattr(socket, "create_connection", guarded_create_connection, raising=True)


@pytest.fixture
def catalog_payload() -> List[Dict[str, Any]]:
    return [
        {
            "id": "ED1",
            "name": {"en": "North"},
            "divisions": [
                {"id": "PD1", "name": "Harbour"},
                {"id": "PD2", "name": "Hills"},
                {"id": "PD3", "name": "Postal"},
            ],
        },
        {
            "id": "ED2",
            "name": "South",
            "divisions": [{"id": "PD4", "name": "Bay"}],
        },
    ]


@pytest.fixture
def catalog(catalog_payload: List[Dict[str, Any]]) -> ReferenceCatalog:
    return ReferenceCatalog.from_payload(catalog_payload)


@pytest.fixture
def store() -> ResultStore:
    """Almacén con reloj creciente. / Store with an increasing clock."""
    ticks = itertools.count(1)
    return ResultStore(clock=lambda: f"2024-09-21T10:00:{next(ticks):02d}.000Z")
