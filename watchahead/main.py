"""watchahead — keeps Sonarr a few episodes ahead of what people are watching.

Process entry point: loads the config, probes both backends, then runs the
polling scheduler (and, if enabled, the status API) until SIGINT/SIGTERM.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from logging.handlers import TimedRotatingFileHandler
from typing import Optional

import uvicorn
from fastapi import FastAPI

from watchahead.errors import ConfigError, StartupProbeFailed
from watchahead.models.config import AppConfig
from watchahead.routes import health
from watchahead.services.config_service import ConfigService
from watchahead.services.decision_service import DecisionService
from watchahead.services.dedup_service import DedupCache
from watchahead.services.filter_service import SessionFilter
from watchahead.services.http_client import HttpClientService
from watchahead.services.media_server import create_media_server_client
from watchahead.services.probe_service import probe_all
from watchahead.services.scheduler_service import Scheduler
from watchahead.services.sonarr_client import SonarrClient

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT, force=True)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handler = TimedRotatingFileHandler(os.path.join(log_dir, "watchahead.log"), when="midnight", backupCount=7)
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        logging.getLogger().addHandler(handler)
    # Request lines carry the Tautulli apikey in the query string
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


# ============================================
# STATUS API
# ============================================


def create_app(config: AppConfig, scheduler: Scheduler, dedup: DedupCache) -> FastAPI:
    app = FastAPI(title="watchahead", version=health.APP_VERSION)
    app.state.config = config
    app.state.scheduler = scheduler
    app.state.dedup_cache = dedup
    app.include_router(health.router)
    return app


async def _serve_status(app: FastAPI, config: AppConfig, scheduler: Scheduler) -> None:
    server = uvicorn.Server(
        uvicorn.Config(app, host=config.status.host, port=config.status.port, log_level="warning")
    )
    # Signals are handled by the scheduler, uvicorn only follows it
    server.install_signal_handlers = lambda: None

    async def _follow_scheduler():
        while not scheduler.stopping:
            await asyncio.sleep(0.5)
        server.should_exit = True

    follower = asyncio.create_task(_follow_scheduler())
    logger.info(f"Status API listening on http://{config.status.host}:{config.status.port}")
    try:
        await server.serve()
    finally:
        follower.cancel()
        scheduler.stop()


# ============================================
# RUN
# ============================================


async def serve(config: AppConfig, http: Optional[HttpClientService] = None) -> int:
    """Probe both backends, then poll until stopped. Returns the exit status."""
    http = http or HttpClientService()
    try:
        sonarr = SonarrClient.from_config(config.sonarr, http, config.name_match_threshold)
        media_server = create_media_server_client(config.media_server, http)

        try:
            await probe_all(
                [("Sonarr", sonarr.probe), (media_server.backend_name, media_server.probe)],
                retries=config.connection_retries,
            )
        except StartupProbeFailed as e:
            logger.error(f"{e}, exiting")
            return 1

        dedup = DedupCache()
        session_filter = SessionFilter(config.media_server.users, config.media_server.libraries)
        engine = DecisionService(
            sonarr,
            dedup,
            prefetch_num=config.prefetch_num,
            request_seasons=config.request_seasons,
            session_filter=session_filter,
            exclude_tag=config.sonarr.exclude_tag,
        )
        scheduler = Scheduler(
            media_server,
            engine,
            config.interval,
            session_filter=session_filter,
            max_concurrency=config.max_concurrent_sessions,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, scheduler.stop)
            except (NotImplementedError, RuntimeError):
                # Not available on Windows or outside the main thread
                logger.debug(f"Cannot install handler for {sig.name}")

        tasks = [scheduler.run()]
        if config.status.enabled:
            tasks.append(_serve_status(create_app(config, scheduler, dedup), config, scheduler))
        await asyncio.gather(*tasks)
        return 0
    finally:
        await http.close()
        logger.info("Shutdown complete")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="watchahead",
        description="Request upcoming episodes in Sonarr based on what is playing on your media server.",
    )
    parser.add_argument("-c", "--config", help="path to config.json (default: $WATCHAHEAD_CONFIG or DATA_DIR/config.json)")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging()
    try:
        config = ConfigService(args.config).load()
    except ConfigError as e:
        logger.error(str(e))
        return 2
    setup_logging(config.log_level, config.log_dir)
    logger.info(
        f"Prefetching {config.prefetch_num} episode(s) ahead, "
        f"{'whole seasons' if config.request_seasons else 'single episodes'}, "
        f"polling {config.media_server.type.display_name} every {config.interval}s"
    )
    return asyncio.run(serve(config))


if __name__ == "__main__":
    sys.exit(main())
