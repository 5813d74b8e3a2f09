"""Cliente HTTP del servidor de resultados.

English:
    HTTP client for the result server.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import httpx

from .gateway import BatchItem, BatchReport, GatewayResponse, SubmissionTransportError, retry_failed, run_batch
from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_BASE_URL = "http://localhost:4000"
DEFAULT_TIMEOUT = 10.0


class ResultsClient:
    """Envía y lee resultados mediante la API REST.

    English: Submits and reads results through the REST API.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def __enter__(self) -> "ResultsClient":
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def submit(self, payload: Dict[str, Any]) -> GatewayResponse:
        """Envía un resultado; errores de transporte se vuelven reintentables.

        English: Submit one result; transport errors become retryable.
        """
        try:
            response = self._client.post("/api/results", json=payload)
        except httpx.HTTPError as exc:
            raise SubmissionTransportError(f"{type(exc).__name__}: {exc}") from exc
        try:
            body = response.json()
        except ValueError:
            body = {"error": response.text or response.reason_phrase}
        if not isinstance(body, dict):
            body = {"error": "Unexpected response body"}
        return GatewayResponse(status_code=response.status_code, body=body)

    def submit_batch(self, items: Iterable[BatchItem]) -> BatchReport:
        return run_batch(items, self.submit)

    def retry_failed(self, report: BatchReport) -> BatchReport:
        return retry_failed(report, self.submit)

    def results(self) -> List[Dict[str, Any]]:
        response = self._client.get("/api/results")
        response.raise_for_status()
        return response.json()

    def districts(self) -> List[Dict[str, Any]]:
        response = self._client.get("/api/districts")
        response.raise_for_status()
        return response.json()
