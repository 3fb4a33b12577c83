"""API gateway entrypoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from services.api_gateway.dependencies import get_monitor, shutdown
from services.api_gateway.presentation.http.routes import router
from services.api_gateway.settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    monitor = get_monitor()
    if settings.autostart:
        await monitor.start()
    else:
        logger.info("Autostart disabled, waiting for camera start request")
    yield
    await shutdown()


app = FastAPI(title="Fire Watch", lifespan=lifespan)
app.include_router(router)
