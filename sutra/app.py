"""
Sutra Consultation Server — Application Factory
"""

import time
import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sutra import settings

# ── 1. Configure logging ──
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("sutra-server")

_startup_time = time.time()
logger.info("Server initialization started...")

# ── 2. Create FastAPI app ──
app = FastAPI(title="Sutra Consultation Server")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── 3. Register routers ──
from sutra.routers import (
    health,
    sessions,
    messages,
    profiles,
)

app.include_router(health.router)
app.include_router(sessions.router)
app.include_router(messages.router)
app.include_router(profiles.router)


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ── 4. Startup event ──
@app.on_event("startup")
async def startup_event():
    """Log startup information and wire the consult services"""
    logger.info("=" * 60)
    logger.info("Sutra Consultation Server Starting")
    logger.info(f"Listening on port: {settings.PORT}")

    # Services are also created lazily on first request if this fails
    try:
        from sutra.consult.setup import get_services, initialize_consult
        if get_services() is None:
            initialize_consult()
    except Exception as e:
        logger.warning(f"Consult services failed to start — will retry on first request: {e}")

    logger.info(f"Total init time: {time.time() - _startup_time:.2f}s")
    logger.info("=" * 60)
