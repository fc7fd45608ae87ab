# app/main.py
from __future__ import annotations

import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from app.api import routers
from app.core.config import get_settings
from app.core.errors import ServiceError
from app.core.lifecycle import AppLifecycle, LifecycleState
from app.core.logging import configure_logging
from app.services.po_parser import get_registry

# === Settings & logging ===
settings = get_settings()
logger = configure_logging()

lifecycle = AppLifecycle(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    missing = settings.missing_required()
    if missing:
        logger.error("Missing required configuration: %s", ", ".join(missing))
        raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")
    get_registry()
    lifecycle.start()
    try:
        yield
    finally:
        await lifecycle.stop()


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.state.lifecycle = lifecycle

# === CORS ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

# === Routers ===
for router in routers:
    app.include_router(router)


# === Error handlers ===
def _field_name(loc: tuple) -> str:
    parts = [str(part) for part in loc if part != "body"]
    return ".".join(parts) or "body"


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = _field_name(tuple(first.get("loc", ())))
    if first.get("type") == "missing":
        message = f"Missing required field: {field}"
    elif first.get("type") == "json_invalid":
        message = "Request body is not valid JSON"
    else:
        message = f"Invalid value for {field}: {first.get('msg', 'invalid')}"
    logger.info("Rejected request to %s: %s", request.url.path, message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"success": False, "error": message})


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request to %s failed: %s", request.url.path, exc.message)
    else:
        logger.info("Rejected request to %s: %s", request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error on %s", request.url.path)
    content = {"success": False, "error": "Internal server error"}
    if settings.expose_stack_traces:
        content["error"] = str(exc) or type(exc).__name__
        content["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# === Basic endpoints ===
@app.get("/", response_class=PlainTextResponse)
async def root() -> str:
    logger.debug("Root endpoint accessed")
    return "PDF to JPEG conversion service is running"


@app.get("/health")
async def health_check(request: Request) -> JSONResponse:
    state = request.app.state.lifecycle.state
    if state is LifecycleState.READY:
        return JSONResponse({"status": "OK"})
    label = "INITIALIZING" if state is LifecycleState.STARTING else state.value
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"status": label})
