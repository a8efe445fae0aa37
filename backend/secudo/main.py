"""
Secudo FastAPI Application
Canonical model interchange (export, import, snapshot restore) backend
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

from . import __version__
from .config import SECURITY_HEADERS, get_settings
from .database import check_database_health, create_tables
from .middleware.error_handling import ErrorHandlingMiddleware
from .routes import interchange, nodes, projects, savepoints

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=settings.log_file,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan management."""
    logger.info("Starting Secudo application...")
    create_tables()
    yield
    logger.info("Shutting down Secudo application...")


app = FastAPI(
    title=settings.app_name,
    description="Canonical model interchange and restore engine",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Add security headers to all responses."""
    response = await call_next(request)
    for header, value in SECURITY_HEADERS.items():
        response.headers[header] = value
    return response


app.add_middleware(ErrorHandlingMiddleware, include_debug_info=settings.debug)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


# Health Check Endpoint
@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint for container orchestration."""
    database_ok = check_database_health()
    health_status = {
        "status": "healthy" if database_ok else "degraded",
        "timestamp": time.time(),
        "version": __version__,
        "database": "healthy" if database_ok else "unhealthy",
    }
    status_code = status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE
    return JSONResponse(status_code=status_code, content=health_status)


app.include_router(interchange.router)
app.include_router(savepoints.router)
app.include_router(nodes.router)
app.include_router(projects.router)


if __name__ == "__main__":
    uvicorn.run(
        "secudo.main:app",
        host="0.0.0.0",  # nosec B104 - Intentional for Docker container binding
        port=8000,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )
