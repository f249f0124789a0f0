"""HTTP API for device listing, settings snapshots and preset application."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from .client import DeviceError, DeviceResponseError
from .config import Config
from .logging import get_logger, redact_mapping
from .metrics import METRICS_CONTENT_TYPE, latest_metrics, observe_request
from .presets import PresetNotFoundError, PresetStoreError
from .sync import SyncService


class DeviceOut(BaseModel):
    """Device response model."""

    name: str
    ip: str
    version: str


class ApplyPresetRequest(BaseModel):
    """Payload naming the preset file to apply."""

    preset: str


class ApplyPresetOut(BaseModel):
    success: bool
    message: str


def _error(status_code: int, error: str, message: Any = None) -> JSONResponse:
    content: Dict[str, Any] = {"error": error}
    if message is not None:
        content["message"] = message
    return JSONResponse(status_code=status_code, content=content)


def create_app(config: Config, service: SyncService) -> FastAPI:
    """Create and configure a FastAPI application."""

    logger = get_logger("wled_sync.api")
    request_logger = get_logger("wled_sync.api.middleware")
    app = FastAPI(
        title="WLED Sync Presets API",
        docs_url="/docs" if config.api_docs else None,
        redoc_url="/redoc" if config.api_docs else None,
        openapi_url="/openapi.json" if config.api_docs else None,
    )

    @app.middleware("http")
    async def _logging_middleware(request: Request, call_next: Callable[..., Any]) -> Response:
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception("Unhandled API error", extra={"path": request.url.path})
            response = _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", str(exc))
        duration_seconds = time.perf_counter() - start
        path_template = getattr(request.scope.get("route"), "path", request.url.path)
        observe_request(request.method, path_template, response.status_code, duration_seconds)
        request_logger.info(
            "Handled request",
            extra={
                "method": request.method,
                "path": path_template,
                "status": response.status_code,
                "duration_ms": round(duration_seconds * 1000, 2),
                "client": request.client.host if request.client else None,
                "headers": redact_mapping(dict(request.headers)),
            },
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def _validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        request_logger.warning(
            "Validation error",
            extra={"path": request.url.path, "errors": exc.errors()},
        )
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request", "message": exc.errors()},
        )

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics")
    async def metrics() -> Response:
        return Response(content=latest_metrics(), media_type=METRICS_CONTENT_TYPE)

    @app.get("/api/devices", response_model=List[DeviceOut])
    async def list_devices() -> List[DeviceOut]:
        devices = await service.list_devices()
        return [DeviceOut(**device.as_dict()) for device in devices]

    @app.get("/api/sync-settings/{ip}")
    async def fetch_sync_settings(ip: str) -> Any:
        try:
            result = await service.fetch_settings(ip)
        except (DeviceError, PresetStoreError) as exc:
            logger.warning("Failed to fetch sync settings", extra={"ip": ip, "error": str(exc)})
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch sync settings", str(exc)
            )
        return {"settings": result.settings.to_dict(), "savedTo": result.saved_to}

    @app.get("/api/presets", response_model=List[str])
    async def list_presets() -> Any:
        try:
            return service.list_presets()
        except PresetStoreError as exc:
            logger.warning("Failed to list presets", extra={"error": str(exc)})
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to read presets directory")

    @app.post("/api/apply-preset/{ip}", response_model=ApplyPresetOut)
    async def apply_preset(ip: str, payload: ApplyPresetRequest) -> Any:
        try:
            result = await service.apply_preset(ip, payload.preset)
        except PresetNotFoundError as exc:
            return _error(status.HTTP_404_NOT_FOUND, "Failed to apply preset", str(exc))
        except DeviceResponseError as exc:
            return _error(exc.status_code, "Failed to apply preset", exc.body)
        except (DeviceError, PresetStoreError) as exc:
            logger.error("Error applying preset", extra={"ip": ip, "preset": payload.preset, "error": str(exc)})
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to apply preset", str(exc))
        return ApplyPresetOut(success=result.success, message=result.message)

    if config.static_dir and config.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(config.static_dir), html=True), name="static")

    return app


class ApiService:
    """Lifecycle wrapper for the FastAPI/uvicorn server."""

    def __init__(self, config: Config, service: SyncService) -> None:
        self.config = config
        self.service = service
        self.logger = get_logger("wled_sync.api")
        self._server: Optional[uvicorn.Server] = None
        self._server_task: Optional[asyncio.Task[None]] = None

    async def start(self) -> None:
        if self._server:
            return
        app = create_app(self.config, self.service)
        uvicorn_config = uvicorn.Config(
            app,
            host=self.config.api_host,
            port=self.config.api_port,
            log_config=None,
            loop="asyncio",
        )
        self._server = uvicorn.Server(config=uvicorn_config)
        self._server_task = asyncio.create_task(self._server.serve())
        self.logger.info(
            "API server starting",
            extra={"host": self.config.api_host, "port": self.config.api_port},
        )

    async def stop(self) -> None:
        if not self._server:
            return
        self.logger.info("Stopping API server")
        self._server.should_exit = True
        if self._server_task:
            await self._server_task
        self._server = None
        self._server_task = None
