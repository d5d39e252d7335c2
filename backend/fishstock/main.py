"""FastAPI application entry point."""

from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fishstock.config import settings
from fishstock.db.engine import engine
from fishstock.db.models import Base
from fishstock.errors import AuthError, FishstockError, RateLimited, ValidationError

# Routers
from fishstock.api.audit import router as audit_router
from fishstock.api.auth import router as auth_router
from fishstock.api.products import router as products_router
from fishstock.api.workers import router as workers_router

from fishstock.utils.logger import bind_context, new_request_id, reset_context, setup_logger

setup_logger(log_format=settings.LOG_FORMAT, log_level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL)
logger = logging.getLogger("fishstock")


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("fishstock started (db=%s)", settings.FISHSTOCK_DB_DIALECT)
    try:
        yield
    finally:
        await engine.dispose()


app = FastAPI(
    title="fishstock",
    description="Inventory backend with worker/admin authentication and two-person approval of stock changes",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    request_id = new_request_id(request.headers.get("X-Request-ID"))
    tokens = bind_context(request_id=request_id)
    try:
        response = await call_next(request)
    finally:
        reset_context(tokens)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(FishstockError)
async def fishstock_error_handler(request: Request, exc: FishstockError) -> JSONResponse:
    headers: dict[str, str] = {}
    if isinstance(exc, AuthError):
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, RateLimited):
        headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after)))
    if exc.status_code < 500:
        logger.warning("%s %s -> %d %s: %s", request.method, request.url.path, exc.status_code, exc.code, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=headers or None,
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Error input is left out: NaN and Infinity are not valid JSON.
    return await fishstock_error_handler(request, ValidationError.from_errors(exc.errors()))


# Mount routers
app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(workers_router, prefix="/api/workers", tags=["workers"])
app.include_router(products_router, prefix="/api/products", tags=["products"])
app.include_router(audit_router)  # prefix is defined in router: /api/audit


@app.get("/api/health")
async def health():
    return {"status": "ok"}


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    uvicorn.run("fishstock.main:app", host=settings.HOST, port=settings.PORT, log_config=None)
