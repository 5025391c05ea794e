from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from billing_sync.config import settings
from billing_sync.services.notifications import close_notifier
from billing_sync.webhooks import router


@asynccontextmanager
async def _lifespan(app: FastAPI):
    yield
    await close_notifier()


def create_app() -> FastAPI:
    app = FastAPI(title="Billing Sync", lifespan=_lifespan)
    app.include_router(router)
    return app


def run() -> None:
    uvicorn.run(create_app(), host=settings.host, port=settings.port)
