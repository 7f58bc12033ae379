"""FastAPI surface for controlling and observing the sync.

Run with ``uvicorn --factory listingmirror.app.api:create_app``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import APIRouter, Body, FastAPI, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from listingmirror import __version__
from listingmirror.app.config import AppSettings, load_settings
from listingmirror.app.dependencies import SyncServiceDep
from listingmirror.infrastructure.observability import (configure_logging,
                                                        format_prometheus)
from listingmirror.services.sync import ConfigurationError, SyncInProgressError
from listingmirror.services.sync_service import SyncService


class CycleStatsResponse(BaseModel):
    """Statistics of one sync cycle."""

    run_id: int | None = None
    status: str  # 'running', 'success', 'failed', 'cancelled'
    total_processed: int = 0
    new_records: int = 0
    updated_records: int = 0
    skipped_duplicates: int = 0
    marked_inactive: int = 0
    errors: int = 0
    started_at: str | None = None
    finished_at: str | None = None
    duration_seconds: float = 0.0
    sweep_performed: bool = False
    error: str | None = None


class SyncControlResponse(BaseModel):
    running: bool
    detail: str | None = None


class CleanupResponse(BaseModel):
    expired_marked: int
    hard_deleted: int


class SyncConfigUpdate(BaseModel):
    """Partial sync configuration; omitted fields keep their current value."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool | None = None
    interval_minutes: int | None = Field(None, ge=1)
    max_retries: int | None = Field(None, ge=1)
    request_timeout_seconds: float | None = Field(None, gt=0)
    batch_size: int | None = Field(None, ge=1)
    delay_between_requests_seconds: float | None = Field(None, ge=0)
    min_sync_interval_hours: float | None = Field(None, ge=0)
    skip_if_recent_data: bool | None = None
    recent_window_hours: float | None = Field(None, ge=0)
    recent_threshold_percent: float | None = Field(None, ge=0, le=100)
    cache_ttl_hours: float | None = Field(None, gt=0)
    retry_base_delay_seconds: float | None = Field(None, ge=0)
    retry_max_delay_seconds: float | None = Field(None, ge=0)
    review_grace_hours: float | None = Field(None, ge=0)
    hard_delete_after_days: float | None = Field(None, ge=0)
    premium_locations: list[str] | None = None
    facility_threshold: int | None = Field(None, ge=1)
    image_threshold: int | None = Field(None, ge=1)


router = APIRouter()


@router.get("/health")
async def health() -> dict[str, Any]:
    return {"status": "ok", "version": __version__}


@router.get("/sync/status")
async def sync_status(service: SyncServiceDep) -> dict[str, Any]:
    return await service.get_status()


@router.post("/sync/start", response_model=SyncControlResponse)
async def start_sync(service: SyncServiceDep) -> SyncControlResponse:
    if not service.config.enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Sync is disabled"
        )
    await service.start()
    return SyncControlResponse(running=service.scheduler.started, detail="Scheduler started")


@router.post("/sync/stop", response_model=SyncControlResponse)
async def stop_sync(service: SyncServiceDep) -> SyncControlResponse:
    await service.stop()
    return SyncControlResponse(running=service.scheduler.started, detail="Scheduler stopped")


@router.post("/sync/trigger", response_model=CycleStatsResponse)
async def trigger_sync(service: SyncServiceDep) -> CycleStatsResponse:
    try:
        stats = await service.trigger_manual_sync()
    except SyncInProgressError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return CycleStatsResponse(**stats.to_dict())


@router.post("/sync/cleanup", response_model=CleanupResponse)
async def cleanup(service: SyncServiceDep) -> CleanupResponse:
    result = await service.cleanup()
    return CleanupResponse(**result.to_dict())


@router.put("/sync/config")
async def update_config(
    service: SyncServiceDep, payload: dict[str, Any] = Body(...)
) -> dict[str, Any]:
    try:
        update = SyncConfigUpdate.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=exc.errors(include_url=False)
        ) from exc
    changes = update.model_dump(exclude_none=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No configuration changes supplied",
        )
    try:
        config = await service.update_config(changes)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return config.to_dict()


@router.get("/metrics")
async def metrics() -> Response:
    return Response(content=format_prometheus(), media_type="text/plain; version=0.0.4")


def create_app(
    service: SyncService | None = None,
    settings: AppSettings | None = None,
) -> FastAPI:
    """Build the API around one :class:`SyncService`.

    When ``service`` is omitted it is built from :func:`load_settings`. The
    scheduler is started on startup only when ``settings.autostart`` is set,
    and always stopped on shutdown.
    """
    if service is None:
        settings = settings or load_settings()
        configure_logging(settings.log_level)
        service = SyncService(
            db_path=settings.db_path, upstream=settings.upstream, config=settings.sync
        )
    autostart = settings.autostart if settings is not None else False

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if autostart:
            await app.state.sync_service.start()
        try:
            yield
        finally:
            await app.state.sync_service.stop()

    app = FastAPI(title="listingmirror API", version=__version__, lifespan=lifespan)
    app.state.sync_service = service
    app.include_router(router)
    return app


__all__ = ["create_app", "router"]
