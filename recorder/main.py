from __future__ import annotations

from datetime import timedelta
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recorder.core.config import Settings, settings as default_settings
from recorder.extraction.registry import StrategyList, build_strategies
from recorder.queue.manager import JobQueueManager
from recorder.queue.pipeline import FallbackPipeline
from recorder.queue.sweeper import Sweeper
from recorder.storage.retention import ArtifactRetention
from recorder.utils.logging import get_logger, level_for, setup_logging

from recorder.api.health import router as health_router
from recorder.api.record import router as record_router

logger = get_logger("recorder.main")


def create_app(
    settings: Settings = default_settings,
    strategies: Optional[StrategyList] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    ``strategies`` overrides the default yt-dlp -> oEmbed -> placeholder
    chain (tests pass in fakes).
    """
    app = FastAPI(
        title=settings.app_name,
        description="Queues YouTube beat recordings and serves the resulting audio files",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    app.include_router(record_router)
    app.include_router(health_router)                # /health (container healthcheck)
    app.include_router(health_router, prefix="/api")  # /api/health

    @app.on_event("startup")
    async def on_startup():
        """
        1. Configure logging
        2. Prepare the downloads directory
        3. Build strategies, pipeline and queue manager
        4. Start the sweeper
        """
        setup_logging(level_for(settings.environment))
        logger.info("Starting %s...", settings.app_name)

        retention = ArtifactRetention(
            settings.downloads_dir,
            unclaimed_ttl=timedelta(seconds=settings.retention_timeout_seconds),
            claimed_ttl=timedelta(seconds=settings.claimed_retention_seconds),
        )
        retention.ensure_directory()

        pipeline = FallbackPipeline(strategies if strategies is not None else build_strategies(settings))
        logger.info(
            "Strategy order: %s",
            " -> ".join(d.name for d in pipeline.descriptors),
        )

        manager = JobQueueManager(
            pipeline,
            retention,
            max_concurrent=settings.max_concurrent,
            max_queue_depth=settings.max_queue_depth,
            queue_timeout=timedelta(seconds=settings.queue_timeout_seconds),
            retention_timeout=timedelta(seconds=settings.retention_timeout_seconds),
        )
        sweeper = Sweeper(
            manager,
            retention,
            interval=settings.sweep_interval_seconds,
            orphan_max_age=timedelta(seconds=settings.orphan_max_age_seconds),
        )
        sweeper.start()

        app.state.retention = retention
        app.state.manager = manager
        app.state.sweeper = sweeper
        logger.info("[OK] %s started (max %d concurrent)", settings.app_name, settings.max_concurrent)

    @app.on_event("shutdown")
    async def on_shutdown():
        logger.info("Shutting down %s...", settings.app_name)
        await app.state.sweeper.stop()
        await app.state.manager.shutdown()
        logger.info("[OK] Shutdown complete")

    return app


app = create_app()
