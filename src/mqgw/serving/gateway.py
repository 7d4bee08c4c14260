"""Prediction gateway in front of the broker work queue."""

from __future__ import annotations

from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from mqgw.broker.bridge import RequestReplyBridge
from mqgw.broker.connection import ConnectionManager
from mqgw.broker.errors import BridgeError
from mqgw.monitoring.metrics import VALIDATION_ERROR_COUNTER, render_metrics
from mqgw.serving.schemas import ErrorResponse, HealthResponse, PredictRequest, PredictResponse
from mqgw.utils.config import PlatformConfig, load_platform_config
from mqgw.utils.logging import configure_logging, get_logger

configure_logging()
LOG = get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

router = APIRouter()


def _validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request payload"
    first = errors[0]
    cause = (first.get("ctx") or {}).get("error")
    if cause is not None:
        return str(cause)
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first['msg']}" if location else str(first["msg"])


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    cfg: PlatformConfig = request.app.state.config
    connection: ConnectionManager = request.app.state.connection
    if not connection.is_live():
        body = HealthResponse(
            status="unhealthy",
            service=cfg.gateway.service_name,
            details=f"Broker connection is {connection.state.value}",
        )
        return JSONResponse(status_code=503, content=body.model_dump(exclude_none=True))
    body = HealthResponse(status="healthy", service=cfg.gateway.service_name)
    return JSONResponse(status_code=200, content=body.model_dump(exclude_none=True))


@router.post("/predict", response_model=PredictResponse)
async def predict(request: Request) -> PredictResponse:
    try:
        payload = await request.json()
    except ValueError:
        VALIDATION_ERROR_COUNTER.inc()
        raise HTTPException(status_code=400, detail="Invalid JSON format")
    try:
        body = PredictRequest.model_validate(payload)
    except ValidationError as exc:
        VALIDATION_ERROR_COUNTER.inc()
        raise HTTPException(status_code=400, detail=_validation_message(exc))

    bridge: RequestReplyBridge = request.app.state.bridge
    try:
        response = await bridge.send(body)
    except BridgeError as exc:
        LOG.error(
            "Error during request/reply",
            extra={"error": str(exc), "correlation_id": exc.correlation_id},
        )
        raise HTTPException(status_code=503, detail="Prediction service failed to respond") from exc
    LOG.info("Prediction request processed", extra={"digit": response.digit})
    return response


@router.get("/metrics")
def metrics() -> PlainTextResponse:
    data, content_type = render_metrics()
    return PlainTextResponse(content=data.decode(), media_type=content_type)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = ErrorResponse(error=HTTPStatus(exc.status_code).phrase, message=str(exc.detail))
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(), headers=exc.headers)


async def permissive_cors(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


def create_app(
    platform_cfg: Optional[PlatformConfig] = None,
    connection_manager: Optional[ConnectionManager] = None,
    bridge: Optional[RequestReplyBridge] = None,
) -> FastAPI:
    """Build the gateway application.

    Startup blocks until the broker is reachable and the work queue is
    declared; the process serves nothing before that.
    """
    cfg = platform_cfg or load_platform_config()
    connection = connection_manager or ConnectionManager(cfg.broker, cfg.retry)
    bridge = bridge or RequestReplyBridge(connection, cfg.broker.request_queue, cfg.bridge.timeout_seconds)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not connection.is_live():
            await connection.connect()
        await connection.declare(cfg.broker.request_queue)
        LOG.info(
            "Gateway ready",
            extra={"service": cfg.gateway.service_name, "cors_enabled": cfg.gateway.cors_enabled},
        )
        yield
        await connection.close()

    app = FastAPI(title="MQGW Gateway", version="0.1.0", lifespan=lifespan)
    app.state.config = cfg
    app.state.connection = connection
    app.state.bridge = bridge
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    if cfg.gateway.cors_enabled:
        app.middleware("http")(permissive_cors)
    app.include_router(router)
    return app
