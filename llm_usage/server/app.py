"""
Local HTTP server.

Serves freshly scanned usage reports to the browser dashboard:

    GET /api/health          connection check
    GET /api/usage[?days=N]  canonical usage report, re-scanned per request
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from llm_usage import __version__
from llm_usage.config.loader import AnalyzerConfig, default_config
from llm_usage.core.aggregator import resolve_window, scan_usage
from llm_usage.core.report import format_timestamp

logger = structlog.stdlib.get_logger()

DEFAULT_PORT = 3456


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=duration_ms,
        )
        return response


def create_app(config: Optional[AnalyzerConfig] = None, default_days: Optional[int] = None) -> FastAPI:
    """Application factory.

    Args:
        config: Analyzer configuration; built-in defaults when omitted
        default_days: Trailing-day window used when a request gives none
    """
    config = config or default_config()
    app = FastAPI(title="LLM Usage Analyzer", version=__version__)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": message})

    @app.get("/api/health")
    def health() -> dict:
        return {"status": "ok", "timestamp": format_timestamp(datetime.now(timezone.utc))}

    @app.get("/api/usage")
    def usage(days: Optional[int] = Query(None, ge=1)) -> JSONResponse:
        window_days = days or default_days
        try:
            start, end = resolve_window(days=window_days) if window_days else (None, None)
            result = scan_usage(config.data_dir, start, end)
        except Exception as e:
            logger.error("http.usage_failed", error=str(e))
            return JSONResponse(status_code=500, content={"error": "Failed to scan usage data"})

        for error in result.errors:
            logger.warning("http.usage_scan_error", error=str(error))
        return JSONResponse(content=result.report.to_dict())

    return app
