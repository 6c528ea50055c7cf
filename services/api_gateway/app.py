"""API gateway entrypoint."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from services.api_gateway.dependencies import (
    get_detection_client,
    get_live_controller,
    get_settings,
)
from services.api_gateway.presentation.http.routes import router

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    get_live_controller().teardown()
    get_detection_client().close()


app = FastAPI(title="PPE Compliance API", lifespan=lifespan)
app.include_router(router)
