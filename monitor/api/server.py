"""
Space Weather Monitor: API Server
=================================

JSON API over the snapshot cache. Reads go through the cache, so
concurrent requests during a miss share a single upstream refresh.

Endpoints:
- GET  /health                    -> Liveness and cache state
- GET  /api/status                -> Snapshot, alerts and metric statuses
- GET  /api/alerts                -> Alerts only
- GET  /api/history/{series}      -> Rolling-window chart series
- POST /api/fetch                 -> Invalidate and refresh now

Usage:
    uvicorn monitor.api.server:app
"""
import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from telemetry.errors import DataUnavailable

from ..config import MonitorConfig
from ..service import MonitorService
from .mapper import map_alerts, map_history, map_series, map_status

logger = logging.getLogger(__name__)

HISTORY_ROUTES = {
    "solar-wind": {"mag": "solar_wind_mag", "plasma": "solar_wind_plasma"},
    "kp": {"kp": "kp_index_1m"},
    "xrays": {"xrays": "xray_flux"},
    "protons": {"protons": "proton_flux"},
    "electrons": {"electrons": "electron_flux"},
}


class HealthResponse(BaseModel):
    status: str
    feeds: int
    cache_state: str
    snapshot_id: Optional[str] = None


class FetchResponse(BaseModel):
    success: bool
    last_fetch: Optional[str] = None
    snapshot_id: str
    alert_count: int


# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

async def _poll_forever(service: MonitorService, interval_seconds: float):
    """Keep the snapshot warm and the refresh log populated."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await service.run_cycle()
        except DataUnavailable as e:
            logger.warning("Scheduled cycle produced no data: %s", e)
        except Exception:
            logger.exception("Scheduled cycle failed; polling continues")


def create_app(
    service: Optional[MonitorService] = None,
    config: Optional[MonitorConfig] = None,
    poll: bool = True
) -> FastAPI:
    """
    Build the API application.

    When no service is given, the lifespan builds one from the environment,
    runs an initial cycle and schedules periodic cycles.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        poller = None
        if app.state.service is None:
            cfg = config or MonitorConfig.from_env()
            print(f"[*] Initializing monitor (data dir: {cfg.data_dir})")
            app.state.service = MonitorService.from_config(cfg)

            try:
                snapshot, evaluation = await app.state.service.run_cycle()
                print(f"[*] Initial fetch: {snapshot.success_count}/{snapshot.feed_count} feeds, "
                      f"{len(evaluation.alerts)} alert(s) active")
            except DataUnavailable as e:
                print(f"[!] Initial fetch produced no data: {e}")

            if poll:
                poller = asyncio.create_task(_poll_forever(app.state.service, cfg.poll_interval_seconds))

        yield

        if poller is not None:
            poller.cancel()
            with suppress(asyncio.CancelledError):
                await poller
        print("[*] Shutting down monitor.")

    app = FastAPI(
        title="Space Weather Monitor API",
        version="1.0.0",
        description="Cached NOAA SWPC space-weather telemetry with threshold alerts",
        lifespan=lifespan
    )
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(DataUnavailable)
    async def data_unavailable_handler(request: Request, exc: DataUnavailable):
        return JSONResponse(status_code=503, content={"error": "Data not yet loaded"})

    _register_routes(app)
    return app


def _service(request: Request) -> MonitorService:
    service = request.app.state.service
    if service is None:
        raise HTTPException(status_code=503, detail="Monitor not initialized")
    return service


# =============================================================================
# ENDPOINTS
# =============================================================================

def _register_routes(app: FastAPI):

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Liveness. Never triggers a refresh."""
        service = _service(request)
        current = service.snapshot_cache.peek()
        return HealthResponse(
            status="online",
            feeds=service.registry.enabled_count,
            cache_state=service.snapshot_cache.state.value,
            snapshot_id=current.snapshot_id if current else None
        )

    @app.get("/api/status")
    async def get_status(request: Request):
        service = _service(request)
        snapshot, evaluation = await service.status()
        return map_status(snapshot, evaluation, cache=service.cache_info())

    @app.get("/api/alerts")
    async def get_alerts(request: Request):
        service = _service(request)
        snapshot, evaluation = await service.status()
        return map_alerts(evaluation, snapshot)

    @app.get("/api/history/{series}")
    async def get_history(series: str, request: Request):
        """Named chart groups, or a single series by reading id."""
        service = _service(request)
        history = await service.history()

        names = HISTORY_ROUTES.get(series)
        if names is not None:
            return map_history(history, names)

        if series not in history.series:
            raise HTTPException(status_code=404, detail=f"Unknown series: {series}")
        return {series: map_series(history.series_for(series))}

    @app.post("/api/fetch", response_model=FetchResponse)
    async def manual_fetch(request: Request):
        service = _service(request)
        snapshot, evaluation = await service.force_refresh()
        entry = service.snapshot_cache.entry
        return FetchResponse(
            success=True,
            last_fetch=entry.produced_at.isoformat() if entry else None,
            snapshot_id=snapshot.snapshot_id,
            alert_count=len(evaluation.alerts)
        )


app = create_app()
