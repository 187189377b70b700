import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from defuse.api.routes import router
from defuse.assets.startup import init_catalog_for_app

APP_NAME = "defuse-trainer"
APP_VERSION = "0.1.0"

# Configure logging
logging.basicConfig(level=os.environ.get("DEFUSE_LOG_LEVEL", "INFO").strip().upper() or "INFO")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
    init_catalog_for_app()
    logger.info("%s %s ready", APP_NAME, APP_VERSION)
    yield


app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=_lifespan)
app.include_router(router)


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": APP_NAME, "version": APP_VERSION}
