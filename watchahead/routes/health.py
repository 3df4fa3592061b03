"""Health and status routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from watchahead.dependencies import get_config, get_dedup_cache, get_scheduler
from watchahead.models.config import AppConfig
from watchahead.services.dedup_service import DedupCache
from watchahead.services.scheduler_service import Scheduler

router = APIRouter(tags=["health"])

APP_VERSION = "1.0.0"


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/api/status")
async def status(
    config: AppConfig = Depends(get_config),
    scheduler: Scheduler = Depends(get_scheduler),
    dedup: DedupCache = Depends(get_dedup_cache),
):
    report = scheduler.last_report
    return {
        "version": APP_VERSION,
        "media_server": config.media_server.type.value,
        "interval": scheduler.interval,
        "stopping": scheduler.stopping,
        "cycles": scheduler.cycles,
        "last_cycle": report.model_dump(mode="json") if report else None,
        "dedup_entries": len(await dedup.entries()),
    }


@router.get("/api/dedup")
async def dedup_entries(dedup: DedupCache = Depends(get_dedup_cache)):
    return {"entries": [e.model_dump() for e in await dedup.entries()]}
