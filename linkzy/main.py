"""
Linkzy — short links monetized through a four-page ad funnel.
Main application entry point.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from linkzy.api.admin import router as admin_router
from linkzy.api.errors import install_error_handlers
from linkzy.api.links import router as links_router
from linkzy.api.redirect import router as redirect_router
from linkzy.api.short_links import router as short_links_router
from linkzy.middleware.security import SecurityHeadersMiddleware
from linkzy.models.database import dispose_engine, ping_database
from linkzy.config import get_settings

import structlog

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.dev.ConsoleRenderer() if get_settings().debug else structlog.processors.JSONRenderer(),
    ],
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("linkzy_starting", base_url=get_settings().base_url)
    yield
    await dispose_engine()
    logger.info("linkzy_shutting_down")


app = FastAPI(
    title="Linkzy",
    description="Shorten links, run visitors through a four-step ad funnel, pay out on clicks.",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if get_settings().debug else None,
    redoc_url="/redoc" if get_settings().debug else None,
    openapi_url="/openapi.json" if get_settings().debug else None,
)

# Security headers on every response
app.add_middleware(SecurityHeadersMiddleware)

# CORS: the dashboard front end is served from its own origin
ALLOWED_ORIGINS = ["*"] if get_settings().debug else [
    "https://linkzy.app",
    "https://www.linkzy.app",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Authorization", "Content-Type", "If-Match"],
    expose_headers=["ETag"],
)

install_error_handlers(app)

# --- Routes ---
app.include_router(redirect_router)
app.include_router(short_links_router)
app.include_router(links_router)
app.include_router(admin_router)


@app.get("/", include_in_schema=False)
async def home():
    return RedirectResponse(url=get_settings().home_url)


@app.get("/health")
async def health():
    database = await ping_database()
    return {
        "status": "ok" if database else "degraded",
        "service": "linkzy",
        "version": "0.1.0",
        "database": "up" if database else "down",
    }
