"""
Bundle Rule Admin - FastAPI entry point.

Wires the draft, bundle and cart-preview routers behind JSON logging and a
request-id middleware. The bundle backend itself is remote; this process
only holds per-merchant session state (variant cache, in-flight flags).
"""
from dotenv import load_dotenv

load_dotenv()

import json
import logging
import sys
import time
import uuid
from typing import Callable

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

import settings
from routers import bundles, cart_preview, drafts
from services.admin_session import SessionRegistry

logger = logging.getLogger(__name__)


class JsonFormatter(logging.Formatter):
    """One JSON object per log line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "severity": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str = settings.LOG_LEVEL) -> None:
    stream = logging.StreamHandler(sys.stdout)
    stream.setFormatter(JsonFormatter())
    root = logging.getLogger()
    root.handlers = [stream]
    root.setLevel(level)
    for name in ("uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(logging.INFO)
    # requests logs every pooled connection at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with X-Request-Id and log REQ/RES lines around it."""

    async def dispatch(self, request: Request, call_next: Callable):
        rid = request.headers.get("X-Request-Id") or uuid.uuid4().hex
        request.state.request_id = rid
        started = time.perf_counter()
        client = request.client.host if request.client else "-"
        logger.info(f"REQ {request.method} {request.url.path} ip={client} rid={rid}")
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"Request pipeline failed rid={rid}")
            raise
        elapsed = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"RES {request.method} {request.url.path} status={response.status_code} durMs={elapsed} rid={rid}"
        )
        response.headers["X-Request-Id"] = rid
        return response


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": exc.errors(), "error": "Validation failed"})


async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Bundle Rule Admin API",
        description="Compose bundle discount rules and preview them against a mock cart",
        version="1.0.0",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )
    app.state.sessions = SessionRegistry()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    @app.get("/")
    async def root_info():
        return {"ok": True, "service": "bundle-rule-admin"}

    @app.get("/healthz")
    async def healthz():
        return {"ok": True}

    @app.get("/api/health")
    async def api_health():
        """Liveness plus the configured backend and per-merchant cache sizes."""
        return {
            "status": "healthy",
            "backend": settings.BUNDLE_API_BASE_URL,
            "sessions": len(app.state.sessions),
            "cachedVariants": app.state.sessions.cached_variants(),
            "timestamp": time.time(),
        }

    app.include_router(drafts.router, prefix="/api", tags=["drafts"])
    app.include_router(bundles.router, prefix="/api", tags=["bundles"])
    app.include_router(cart_preview.router, prefix="/api", tags=["cart-preview"])

    @app.on_event("startup")
    async def startup():
        logger.info(f"Bundle Rule Admin starting (backend={settings.BUNDLE_API_BASE_URL}, env={settings.ENVIRONMENT})")

    @app.on_event("shutdown")
    async def shutdown():
        logger.info("Bundle Rule Admin shutting down")

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.HOST, port=settings.PORT, reload=settings.ENVIRONMENT != "production")
