"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from circles.api.deps import close_circle_service
from circles.config import configure_logging, settings
from circles.core.errors import (
    CirclesError,
    FriendNotFoundError,
    PersistenceError,
    PostNotFoundError,
    ReservedGroupNotFoundError,
)
from circles.db.database import Base, engine
from circles.db.redis import close_redis, ping_redis

log = logging.getLogger("circles.app")

# Raised errors that reach the HTTP layer; expected failures travel in result bodies.
_ERROR_STATUS = {
    FriendNotFoundError: 404,
    PostNotFoundError: 404,
    ReservedGroupNotFoundError: 404,
    PersistenceError: 503,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Startup: create tables (dev only; use Alembic in production)
    import circles.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Shutdown: write pending snapshots, then close connections
    await close_circle_service()
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title="Inner Circles API",
    description="Capacity-bounded relationship tiers, sunset nudges and a chronological feed",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # TODO: restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(CirclesError)
async def circles_error_handler(request: Request, exc: CirclesError):
    status_code = _ERROR_STATUS.get(type(exc), 400)
    if status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"detail": exc.message, "reason": exc.reason})


# --- Routes ---
from circles.api.routes import feed, friends, nudges, portability, reserved  # noqa: E402
from circles.api.routes import settings as settings_routes  # noqa: E402

USER_PREFIX = "/api/circles/{user_id}"

app.include_router(friends.router, prefix=USER_PREFIX, tags=["friends"])
app.include_router(reserved.router, prefix=USER_PREFIX, tags=["reserved"])
app.include_router(nudges.router, prefix=USER_PREFIX, tags=["nudges"])
app.include_router(feed.router, prefix=USER_PREFIX, tags=["feed"])
app.include_router(settings_routes.router, prefix=USER_PREFIX, tags=["settings"])
app.include_router(portability.router, prefix=USER_PREFIX, tags=["portability"])


@app.get("/health")
async def health_check():
    return {"status": "ok", "env": settings.APP_ENV, "redis": await ping_redis()}
