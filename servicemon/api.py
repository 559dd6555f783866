"""HTTP API reporting service health and status."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    GCCollector,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from pydantic import BaseModel

from .config import MonitorSettings
from .events import EventLogger
from .registry import ProcessClock, ServiceRecord, ServiceRegistry, ServiceStatus


class HomeResponse(BaseModel):
    message: str
    version: str
    uptime: str


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str


class ServiceRecordResponse(BaseModel):
    name: str
    status: ServiceStatus
    uptime: str
    timestamp: datetime

    @classmethod
    def from_record(cls, record: ServiceRecord) -> "ServiceRecordResponse":
        return cls(
            name=record.name,
            status=record.status,
            uptime=record.uptime,
            timestamp=record.timestamp,
        )


class ErrorResponse(BaseModel):
    error: str


def build_metrics_registry() -> CollectorRegistry:
    """Runtime collectors scoped to one app instance."""
    registry = CollectorRegistry()
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)
    GCCollector(registry=registry)
    return registry


def create_app(
    registry: ServiceRegistry,
    settings: MonitorSettings,
    events: EventLogger,
    clock: Optional[ProcessClock] = None,
) -> FastAPI:
    app = FastAPI(title="Service Monitor", version=settings.version)
    clock = clock or registry.clock

    metrics_registry = build_metrics_registry()
    requests_total = Counter(
        "http_requests",
        "HTTP responses served, by route template and status code",
        ["method", "route", "status"],
        registry=metrics_registry,
    )
    app.state.metrics_registry = metrics_registry

    def request_fields(request: Request) -> Dict[str, Any]:
        remote = None
        if request.client:
            remote = f"{request.client.host}:{request.client.port}"
        return {
            "method": request.method,
            "path": request.url.path,
            "remote": remote,
        }

    @app.middleware("http")
    async def count_requests(request: Request, call_next):
        response = await call_next(request)
        route = request.scope.get("route")
        template = getattr(route, "path", None) or "unmatched"
        requests_total.labels(
            method=request.method, route=template, status=str(response.status_code)
        ).inc()
        return response

    @app.get("/", response_model=HomeResponse)
    async def home(request: Request) -> HomeResponse:
        response = HomeResponse(
            message=settings.welcome_message,
            version=settings.version,
            uptime=clock.uptime(),
        )
        events.emit("info", "Home endpoint accessed", request_fields(request))
        return response

    @app.get("/health", response_model=HealthResponse)
    async def health(request: Request) -> HealthResponse:
        response = HealthResponse(
            status="healthy",
            timestamp=clock.now(),
            version=settings.version,
        )
        events.emit("debug", "Health check performed", request_fields(request))
        return response

    @app.get("/api/services", response_model=List[ServiceRecordResponse])
    async def list_services(request: Request) -> List[ServiceRecordResponse]:
        services = [ServiceRecordResponse.from_record(record) for record in registry.list()]
        fields = request_fields(request)
        fields["service_count"] = len(services)
        events.emit("info", "Services list requested", fields)
        return services

    @app.get(
        "/api/services/{name}",
        response_model=ServiceRecordResponse,
        responses={status.HTTP_404_NOT_FOUND: {"model": ErrorResponse}},
    )
    async def get_service(name: str, request: Request) -> Any:
        fields = request_fields(request)
        fields["service"] = name
        record = registry.get(name)
        if record is None:
            events.emit("warn", "Service not found", fields)
            return JSONResponse(
                status_code=status.HTTP_404_NOT_FOUND,
                content={"error": f"Service '{name}' not found"},
            )
        fields["status"] = record.status.value
        events.emit("info", "Service status requested", fields)
        return ServiceRecordResponse.from_record(record)

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(
            content=generate_latest(metrics_registry),
            media_type=CONTENT_TYPE_LATEST,
        )

    return app


__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "HomeResponse",
    "ServiceRecordResponse",
    "build_metrics_registry",
    "create_app",
]
