"""FastAPI application exposing the public JSON API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

from ..config import CONFIG, reload_config
from ..db import initialize_database
from .routes import billing, bots, models, products, subscriptions, users


load_dotenv()
reload_config()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(api_app: FastAPI) -> AsyncIterator[None]:
    if not initialize_database():
        logger.warning("Starting without database indexes; requests will fail until MongoDB is reachable")
    yield


app = FastAPI(
    lifespan=lifespan,
    title=CONFIG.api_title,
    version=CONFIG.api_version,
    description=(
        "JSON API for botdesk accounts, subscriptions and bots. "
        "Authenticate using the bearer token returned by /v1/users/login."
    ),
)


def _configure_cors(api_app: FastAPI) -> None:
    origins: List[str] = list(CONFIG.api_cors_origins)
    if not origins:
        return

    api_app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


_configure_cors(app)


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Database is unavailable"},
    )


@app.get("/health", tags=["health"])  # pragma: no cover - trivial fast check
def healthcheck() -> dict[str, str]:
    """Simple health endpoint for load balancers and smoke tests."""

    return {"status": "ok"}


app.include_router(users.router, prefix="/v1", tags=["users"])
app.include_router(models.router, prefix="/v1", tags=["models"])
app.include_router(products.router, prefix="/v1", tags=["products"])
app.include_router(subscriptions.router, prefix="/v1", tags=["subscriptions"])
app.include_router(billing.router, prefix="/v1", tags=["billing"])
app.include_router(bots.router, prefix="/v1", tags=["bots"])
