"""
Xpress Image Converter Backend
==============================
FastAPI application for image compression and AI background removal.
"""

import logging

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.dependencies import get_session_store, get_storage
from api.objects import router as objects_router
from api.sessions import router as sessions_router
from config import settings
from services.errors import XpressError
from services.session_store import SessionStore
from services.storage_service import StorageService

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Xpress Image Converter API",
    description="Image compression, format conversion and background removal",
    version="0.1.0",
)

# CORS — allow frontend origin (and localhost for dev)
allow_origins = [
    settings.FRONTEND_URL,
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register API routers
app.include_router(sessions_router, prefix="/api", tags=["sessions"])
app.include_router(objects_router, prefix="/api", tags=["objects"])


@app.exception_handler(XpressError)
async def xpress_error_handler(request: Request, exc: XpressError):
    """Single error contract for every user-facing failure."""
    if exc.status_code >= 500:
        logger.error("%s %s -> %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s -> %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "hint": exc.hint},
    )


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": "xpress-api",
        "version": "0.1.0",
    }


@app.get("/health")
async def health(
    store: SessionStore = Depends(get_session_store),
    storage: StorageService = Depends(get_storage),
):
    """Detailed health check for deployment monitoring."""
    return {
        "status": "healthy",
        "services": {
            "sessions": len(store),
            "storage": type(storage.provider).__name__,
        },
    }
