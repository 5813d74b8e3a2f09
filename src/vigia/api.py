"""API pública del servidor de resultados: REST y canal WebSocket.

English:
    Public result server API: REST endpoints and WebSocket channel.
"""

from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, Query, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.websockets import WebSocketDisconnect

from .aggregation import build_dashboard
from .catalog import ReferenceCatalog, load_catalog
from .config import VigiaSettings, load_config
from .gateway import BatchItem, SubmissionGateway
from .logging import get_logger
from .publisher import ChangePublisher, Subscription, SubscriptionMode
from .schemas import InvalidPayload
from .store import ResultStore

logger = get_logger(__name__)


async def _watch_disconnect(websocket: WebSocket, store: ResultStore, subscription: Subscription) -> None:
    """Cierra la suscripción cuando el cliente se desconecta.

    English: Close the subscription when the client disconnects.
    """
    try:
        while True:
            message = await websocket.receive()
            if message.get("type") == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        store.unsubscribe(subscription)


def _batch_items(body: Any) -> List[BatchItem]:
    if isinstance(body, dict) and isinstance(body.get("items"), list):
        body = body["items"]
    if not isinstance(body, list):
        raise InvalidPayload("Batch body must be a JSON array of results")
    return [BatchItem(item_id=str(index), payload=payload) for index, payload in enumerate(body)]


def create_app(
    settings: Optional[VigiaSettings] = None,
    *,
    catalog: Optional[ReferenceCatalog] = None,
    store: Optional[ResultStore] = None,
) -> FastAPI:
    """Construye la aplicación FastAPI.

    Args:
        settings: Configuración; se carga del entorno si no se indica.
        catalog: Catálogo de referencia; se lee de ``CATALOG_PATH`` si falta.
        store: Almacén compartido; se crea uno vacío si falta.

    English:
        Build the FastAPI application.

    Args:
        settings: Configuration; loaded from the environment when omitted.
        catalog: Reference catalog; read from ``CATALOG_PATH`` when missing.
        store: Shared store; an empty one is created when missing.
    """
    settings = settings or load_config(check_paths=catalog is None)
    catalog = catalog if catalog is not None else load_catalog(settings.CATALOG_PATH)
    store = store or ResultStore(
        ChangePublisher(settings.SUBSCRIBER_QUEUE_SIZE),
        audit_size=settings.AUDIT_LOG_SIZE,
    )
    gateway = SubmissionGateway(store)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        logger.info("server_started", districts=len(catalog), records=len(store))
        yield
        store.publisher.close_all()
        logger.info("server_stopped", records=len(store))

    app = FastAPI(title="Vigía Result Server", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.catalog = catalog
    app.state.store = store
    app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(InvalidPayload)
    async def invalid_payload_handler(_request: Request, exc: InvalidPayload) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.post("/api/results")
    async def submit_result(request: Request) -> JSONResponse:
        """/** Inserta o sobrescribe un resultado. / Insert or override one result. **/"""
        response = gateway.submit(await request.body())
        return JSONResponse(status_code=response.status_code, content=response.body)

    @app.post("/api/results/batch")
    async def submit_batch(request: Request) -> Dict[str, Any]:
        """/** Envío masivo con fallos por elemento. / Bulk submit with per-item failures. **/"""
        try:
            body = json.loads(await request.body())
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidPayload(f"Invalid JSON: {exc}") from exc
        return gateway.submit_batch(_batch_items(body)).to_dict()

    @app.get("/api/results")
    async def list_results() -> List[Dict[str, Any]]:
        return store.snapshot()

    @app.get("/api/districts")
    async def list_districts() -> List[Dict[str, Any]]:
        return catalog.as_json()

    @app.get("/api/summary")
    async def summary() -> Dict[str, Any]:
        """/** Vistas agregadas del snapshot vigente. / Aggregated views of the current snapshot. **/"""
        return build_dashboard(catalog, store.snapshot()).to_dict()

    @app.get("/api/audit")
    async def audit(limit: int = Query(default=100, ge=1, le=10000)) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in store.audit.entries(limit)]

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "records": len(store), "subscribers": store.publisher.subscriber_count}

    @app.websocket("/ws/results")
    async def live_results(websocket: WebSocket, mode: SubscriptionMode = SubscriptionMode.BOTH) -> None:
        """Snapshot inicial y luego cada evento, en orden.

        English: Initial snapshot, then every event, in order.
        """
        await websocket.accept()
        subscription = store.subscribe(mode)
        watcher = asyncio.create_task(_watch_disconnect(websocket, store, subscription))
        try:
            await websocket.send_json(subscription.initial_message().as_json())
            while True:
                message = await subscription.get()
                if message is None:
                    break
                await websocket.send_json(message.as_json())
            if subscription.overflowed:
                await websocket.close(code=1013)
        except WebSocketDisconnect:
            logger.info("subscriber_disconnected", subscription_id=subscription.id)
        finally:
            watcher.cancel()
            store.unsubscribe(subscription)

    return app
