"""FastAPI health endpoints for Kubernetes liveness and readiness probes."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .models import ConnectorStatus, HealthStatus

if TYPE_CHECKING:
    from .connector import PaymentSyncConnector


def create_health_app(connector: PaymentSyncConnector) -> FastAPI:
    """Build a minimal FastAPI app with ``/health`` and ``/ready`` routes.

    ``/health`` reports the cursor pair and cycle counters so a stalled
    watermark is visible from outside the process.  ``/ready`` turns
    200 once the process is running and has finished a sync cycle.
    """
    app = FastAPI(title=f"{connector.config.name} health", docs_url=None, redoc_url=None)

    @app.get("/health")
    async def health() -> JSONResponse:
        details = await connector.health_check()
        status = HealthStatus(
            name=connector.config.name,
            status=connector.status,
            uptime_seconds=time.monotonic() - connector.start_time,
            details=details,
        )
        code = 200 if connector.status in (ConnectorStatus.RUNNING, ConnectorStatus.STARTING) else 503
        return JSONResponse(content=status.model_dump(mode="json"), status_code=code)

    @app.get("/ready")
    async def ready() -> JSONResponse:
        engine = connector.engine
        synced = engine.stats.last_cycle_at is not None
        is_ready = connector.status == ConnectorStatus.RUNNING and synced
        return JSONResponse(
            content={"ready": is_ready, "local_cursor": engine.local_cursor},
            status_code=200 if is_ready else 503,
        )

    return app
