"""
FastAPI application for the adventure engine

Serves the adventure WebSocket (``/ws``) plus root and health endpoints.
Logging is configured from ``LOG_LEVEL`` and ``LOG_FILE`` at import time so
uvicorn workers log the same way as ``python -m adventure.main``.
"""

import os
import time
import uuid
from typing import Callable, get_args

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from adventure import __version__
from adventure.api.sessions import active_connections
from adventure.api.sessions import router as sessions_router
from adventure.config import settings
from adventure.utils.logger import LogLevel, get_logger, setup_logging


def log_level_from_env() -> LogLevel:
    """``LOG_LEVEL`` if it names a known level, INFO otherwise"""
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    return level if level in get_args(LogLevel) else "INFO"  # type: ignore[return-value]


log_level = log_level_from_env()
setup_logging(level=log_level, log_file=os.getenv("LOG_FILE"))

logger = get_logger(__name__)

app = FastAPI(
    title="Adventure Engine",
    description="Turn-based interactive narrative driven by LLM phases",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next: Callable) -> Response:
    """Log each HTTP request with a short correlation id and its duration"""
    request_id = uuid.uuid4().hex[:8]
    request.state.request_id = request_id
    started = time.perf_counter()

    try:
        response = await call_next(request)
    except Exception as e:
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.error(
            f"[API] {request.method} {request.url.path} failed after {elapsed_ms:.1f}ms: {e}",
            extra={"component": "API", "request_id": request_id, "error_type": type(e).__name__},
            exc_info=True,
        )
        raise

    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"[API] {request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)",
        extra={"component": "API", "request_id": request_id, "duration_ms": elapsed_ms},
    )
    return response


app.include_router(sessions_router, tags=["sessions"])


@app.on_event("startup")
async def startup_event():
    """Log the effective configuration once"""
    logger.info(f"[Startup] Adventure engine {__version__}")
    logger.info(f"[Startup] Writer model: {settings.model_provider}/{settings.model_name}")
    logger.info(
        f"[Startup] Embeddings: {settings.embedding_provider}/{settings.embedding_model_name}"
    )
    logger.info(f"[Startup] Saves: {settings.database_path} (keeping {settings.max_save_files})")
    logger.info(f"[Startup] Story parameters: {settings.story_parameters_path}")
    if settings.prompts_dir:
        logger.info(f"[Startup] Prompt overrides: {settings.prompts_dir}")


@app.get("/")
async def root():
    return {
        "message": "Adventure Engine",
        "version": __version__,
        "status": "running",
        "websocket": "/ws",
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "active_sessions": len(active_connections)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "adventure.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=log_level.lower(),
    )
