from __future__ import annotations

import hmac
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.responses import JSONResponse, PlainTextResponse

from .engine import Engine

logger = logging.getLogger("strategy_engine.server")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def create_app(engine: Engine, secret: str) -> FastAPI:
    """HTTP trigger for the engine.

    ``/run`` requires ``Authorization: Bearer <secret>``; an empty secret
    rejects every call. One engine, and its HTTP sessions, serves every
    request; the caller closes it when the server stops.
    """
    app = FastAPI(title="Strategy Engine")

    def require_bearer(authorization: Optional[str] = Header(default=None)) -> bool:
        scheme, _, token = (authorization or "").partition(" ")
        presented = token.strip().encode("utf-8")
        if not secret or scheme.lower() != "bearer" or not hmac.compare_digest(presented, secret.encode("utf-8")):
            logger.warning("trigger_rejected reason=unauthorized")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
        return True

    @app.options("/run")
    def run_preflight() -> PlainTextResponse:
        return PlainTextResponse("ok", headers=CORS_HEADERS)

    @app.api_route("/run", methods=["GET", "POST"], dependencies=[Depends(require_bearer)])
    def run() -> JSONResponse:
        logger.info("trigger_accepted")
        try:
            result = engine.run_once()
        except Exception as exc:
            logger.exception("engine_run_failed")
            return JSONResponse({"error": str(exc)}, status_code=500, headers=CORS_HEADERS)
        return JSONResponse({"ok": True, "result": result.as_dict()}, headers=CORS_HEADERS)

    @app.get("/market-status")
    def market_status(exchange: str = "NYSE") -> JSONResponse:
        try:
            state = engine.market_status(exchange)
        except Exception as exc:
            logger.exception("market_status_failed")
            return JSONResponse({"error": str(exc)}, status_code=500, headers=CORS_HEADERS)
        if state is None:
            return JSONResponse({"error": "market state unavailable"}, status_code=502, headers=CORS_HEADERS)
        return JSONResponse({"status": state}, headers=CORS_HEADERS)

    @app.get("/health")
    def health() -> dict:
        return {"ok": True}

    return app
