"""FastAPI dependency injection — provides services via Depends()."""
from __future__ import annotations

from fastapi import Request

from watchahead.models.config import AppConfig
from watchahead.services.dedup_service import DedupCache
from watchahead.services.scheduler_service import Scheduler


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_scheduler(request: Request) -> Scheduler:
    return request.app.state.scheduler


def get_dedup_cache(request: Request) -> DedupCache:
    return request.app.state.dedup_cache
