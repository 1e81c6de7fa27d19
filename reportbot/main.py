from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Dict

from fastapi import FastAPI

from reportbot.api.routes.reports import router as reports_router
from reportbot.core.config import settings
from reportbot.core.logging import setup_logging
from reportbot.dependencies import Container

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.container = Container()
    try:
        yield
    finally:
        await app.state.container.close()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.include_router(reports_router)


@app.get("/")
async def root() -> Dict[str, str]:
    return {"service": settings.app_name, "status": "running"}
