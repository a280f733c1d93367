"""FastAPI read surface over the HNS client."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from . import metrics
from .client import HNSClient
from .errors import (
    ChainReadError,
    ChainWriteError,
    HNSError,
    InterfaceLoadError,
    TLDNotFound,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR = (
    (TLDNotFound, 404),
    (InterfaceLoadError, 503),
    (ChainReadError, 502),
    (ChainWriteError, 502),
)


def _status_for(exc: HNSError) -> int:
    for error_cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status
    return 400


def create_app(*, client: Optional[HNSClient] = None) -> FastAPI:
    """Instantiate the application around a shared :class:`HNSClient`."""

    hns = client or HNSClient.from_settings()
    app = FastAPI(title="HNS Client", version="0.1.0")

    async def get_client() -> HNSClient:
        return hns

    @app.exception_handler(HNSError)
    async def _hns_error(_request: Request, exc: HNSError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.warning("Request failed: %s", exc, extra={"event": "api.error", "data": exc.to_dict()})
        return JSONResponse(status_code=status, content={"error": exc.to_dict()})

    @app.get("/healthz")
    async def health(client: HNSClient = Depends(get_client)) -> Dict[str, Any]:
        return {"status": "ok", "tlds": client.directory.tlds(), "tld_source": client.directory.source}

    @app.get("/metrics")
    async def metrics_endpoint() -> Response:
        return Response(metrics.render(), media_type=metrics.CONTENT_TYPE_LATEST)

    @app.get("/v1/tlds")
    async def list_tlds(client: HNSClient = Depends(get_client)) -> Dict[str, Any]:
        return {"tlds": [record.model_dump() for record in client.directory.records()]}

    @app.get("/v1/domains/{address}")
    async def domains(
        address: str,
        expected_count: Optional[int] = Query(default=None, ge=0),
        refresh: bool = False,
        client: HNSClient = Depends(get_client),
    ) -> Dict[str, Any]:
        try:
            result = await client.ownership.domains_owned_by(
                address, expected_count=expected_count, refresh=refresh
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        payload = result.model_dump(mode="json")
        payload["count"] = result.count
        return payload

    @app.get("/v1/price/{label}")
    async def price(
        label: str,
        tld: Optional[str] = None,
        years: int = Query(default=1, ge=1, le=100),
        client: HNSClient = Depends(get_client),
    ) -> Dict[str, Any]:
        record = client.directory.get(tld) if tld else client.directory.primary()
        duration = client.settings.default_duration * years
        quote = await client.manager.rent_price(label, duration, record.tld)
        available = await client.manager.available(label, record.tld)
        return {
            "name": client.directory.full_name(label.lower(), record.tld),
            "duration": duration,
            "available": available,
            "base": str(quote.base),
            "premium": str(quote.premium),
            "total": str(quote.total),
        }

    return app


__all__ = ["create_app"]
