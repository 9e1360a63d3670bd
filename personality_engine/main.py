"""
Personality Engine API

FastAPI application for chat generation with personality-styled replies.

Run with: ``uvicorn personality_engine.main:app --port 10001``
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Awaitable, Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from personality_engine.api.routes import agents, health, personality
from personality_engine.config import settings
from personality_engine.db import close_db, init_db
from personality_engine.personality.profiles import get_profile_store


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"LLM model: {settings.llm_model}")
    logger.info(f"Personality model: {settings.personality_model}")

    try:
        await init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    store = get_profile_store()
    logger.info(f"Loaded {len(store)} personality profiles from {settings.personalities_path}")

    yield

    logger.info("Shutting down...")
    pending = [t for t in agents._session_tasks.values() if not t.done()]
    if pending:
        logger.info(f"Cancelling {len(pending)} running chat sessions")
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    await close_db()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Chat orchestration with personality-styled replies.",
    lifespan=lifespan,
    # Disable public docs unless PERSONA_DEBUG=true
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
)

app.state.limiter = agents.limiter
app.add_exception_handler(
    RateLimitExceeded,
    _rate_limit_exceeded_handler,  # type: ignore[arg-type]  # slowapi handler signature is (Request, RateLimitExceeded)
)

# Security headers middleware (added first, runs last)
app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(personality.router, prefix="/api/v1", tags=["personality"])
app.include_router(agents.router, prefix="/api/v1", tags=["agents"])


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with service info."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=10001)
