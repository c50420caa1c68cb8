#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
FastAPI Web Server - REST API for Chronicle.

Thin orchestration shell: app creation, middleware, router includes.
Jobs advance only through POST /job/{id}/tick and the cron-driven
POST /job/auto-resume; the server runs no background loops.

Usage:
    uvicorn api.main:app --host 0.0.0.0 --port 8000
"""

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

# Load environment variables from .env file
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

from config.settings import settings
from api.rate_limiter import limiter
from api.routes.health import router as health_router
from api.routes.jobs import router as jobs_router

logger = logging.getLogger("API.Main")

# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Chronicle API",
    description="Incremental long-form fiction generation, one tick at a time",
    version=settings.app_version,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware, origins from settings (env var) or dev defaults
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


app.add_middleware(SecurityHeadersMiddleware)

# =============================================================================
# Include Routers
# =============================================================================

app.include_router(health_router)
app.include_router(jobs_router)

# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    logger.info("Starting Chronicle API Server...")
    logger.info("API Documentation: http://localhost:8000/docs")

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
