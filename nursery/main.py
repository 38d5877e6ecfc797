from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException

from .core.config import Settings, settings
from .core.log import configure_logging

from .api.routes import router as api_router
import nursery.api.routes as routes_module

from .drivers.sim_source import SimulatedDataSource
from .services.monitor import MonitorService, build_monitor


logger = logging.getLogger(__name__)


def create_app(cfg: Optional[Settings] = None, monitor: Optional[MonitorService] = None) -> FastAPI:
    cfg = cfg or settings
    svc = monitor or build_monitor(cfg)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(cfg)
        logger.info("Starting %s (source=%s)", cfg.app_name, type(svc.source).__name__)
        await svc.start()
        try:
            yield
        finally:
            await svc.stop()
            logger.info("Shutdown complete")

    def get_monitor() -> MonitorService:
        return svc

    def get_sim_source() -> SimulatedDataSource:
        if not isinstance(svc.source, SimulatedDataSource):
            raise HTTPException(status_code=404, detail="Simulated data source not active (source_mode is not 'sim').")
        return svc.source

    app = FastAPI(title=cfg.app_name, lifespan=lifespan)

    # Make the dependency functions in routes resolve to the real ones
    app.dependency_overrides[routes_module.get_monitor] = get_monitor
    app.dependency_overrides[routes_module.get_sim_source] = get_sim_source

    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
