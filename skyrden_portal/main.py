# Copyright (C) 2024 Skyrden Portal Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Skyrden recruitment portal - Main FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware

from skyrden_portal import __version__
from skyrden_portal.config import settings
from skyrden_portal.database import async_session_maker, init_db
from skyrden_portal.errors import register_exception_handlers
from skyrden_portal.routers import admin, applications, auth
from skyrden_portal.services import whitelist
from skyrden_portal.services.notifications import (
    NotificationDispatcher,
    config_from_settings,
    load_saved_config,
)

logger = logging.getLogger(__name__)


def _get_cors_origins() -> list[str]:
    raw = (settings.cors_origins or "").strip()
    return [o.strip() for o in raw.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    await init_db()
    async with async_session_maker() as db:
        added = await whitelist.seed_entries(
            db, whitelist.parse_discord_ids(settings.admin_discord_ids)
        )
        config = await load_saved_config(db, config_from_settings())
        await db.commit()
    if added:
        logger.info("Seeded %s admin whitelist entries from ADMIN_DISCORD_IDS", added)

    app.state.dispatcher = NotificationDispatcher(config, timeout=settings.oauth_timeout_seconds)
    if not config.enabled or not config.bot_token:
        logger.info(
            "Discord bot notifications disabled - set DISCORD_BOT_TOKEN or configure "
            "them in the admin panel. Reviews are queued until then."
        )
    yield
    # shutdown


app = FastAPI(
    title="Skyrden Recruitment Portal",
    description="Staff recruitment: Discord login, application forms and review",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.session_secret,
    session_cookie="skyrden_session",
    max_age=settings.session_max_age,
    same_site="none" if settings.cookie_secure else "lax",
    https_only=settings.cookie_secure,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status, and duration for each request (no body, query or cookies)."""
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info("%s %s %s %.1fms", request.method, request.url.path, response.status_code, duration_ms)
    return response


register_exception_handlers(app)

app.include_router(auth.router, prefix="/api")
app.include_router(applications.router, prefix="/api")
app.include_router(admin.router, prefix="/api")


@app.get("/")
async def root():
    """API info."""
    return {
        "name": "Skyrden Recruitment Portal",
        "version": __version__,
        "api": "/api",
        "docs": "/api/docs",
    }


@app.get("/api/health")
async def health():
    """Health check for load balancers."""
    return {"status": "ok"}


def run() -> None:
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("skyrden_portal.main:app", host=settings.host, port=settings.port)
