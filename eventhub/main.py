from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from prometheus_fastapi_instrumentator import Instrumentator

from eventhub.api.dev import router as dev_router
from eventhub.api.errors import register_exception_handlers
from eventhub.api.v1.router import router as api_router
from eventhub.api.v1.router import socket_router
from eventhub.core.config import settings
from eventhub.core.logging import configure_logging
from eventhub.db import create_all
from eventhub.middleware.rate_limit import RateLimitMiddleware
from eventhub.middleware.request_id import RequestIdMiddleware
from eventhub.realtime import Broadcaster, ChannelRegistry
from eventhub.redis_client import close_redis

configure_logging()

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    create_all()
    registry = ChannelRegistry()
    app.state.channels = registry
    app.state.broadcaster = Broadcaster(registry)
    logger.info("startup", env=settings.env, storage_backend=settings.storage_backend)
    try:
        yield
    finally:
        registry.close()
        close_redis()
        logger.info("shutdown")


app = FastAPI(title="EventHub API", lifespan=lifespan)

# Starlette runs the LAST added middleware FIRST (outermost).
# We want:
# - RequestId to apply even to CORS preflight + rate limit responses
# - CORS to handle preflight properly
# - RateLimit to be closest to the app (innermost)
app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)

register_exception_handlers(app)

Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)


@app.get("/")
def root():
    return {"name": "EventHub API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "ok"}


app.include_router(api_router, prefix="/api")
app.include_router(socket_router)

if settings.storage_backend == "local":
    media_root = Path(settings.storage_root)
    media_root.mkdir(parents=True, exist_ok=True)
    app.mount(settings.media_url_prefix, StaticFiles(directory=media_root), name="media")

if settings.dev_routes_enabled:
    app.include_router(dev_router)
