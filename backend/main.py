"""
FastAPI application entry point.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from utils.exceptions import AppError
from models.database import init_db
from engine.batch_controller import BatchController
from engine.transcription_manager import TranscriptionManager

# Configure logging to show INFO level logs (needed for perf_logger)
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    force=True  # Override any existing config
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup (database, batch controller) and shutdown.
    """
    # === STARTUP ===
    logger.info("Starting application...")

    await init_db()
    controller = BatchController.get_instance()

    # Optionally preload model (faster first transcription)
    if settings.preload_model_on_startup:
        await asyncio.get_running_loop().run_in_executor(
            None, TranscriptionManager.get_instance().preload_model
        )

    logger.info("Application ready")

    yield

    # === SHUTDOWN ===
    logger.info("Shutting down...")
    await controller.shutdown()
    logger.info("Shutdown complete")


# Create FastAPI app with lifespan
app = FastAPI(
    title=settings.app_name,
    description="Batch audio/video transcription queue with URL download support",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware for the desktop frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request, exc: AppError):
    """Global handler for custom application errors."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "type": type(exc).__name__}
    )

# Include routers
from routers import batch, media, history
app.include_router(batch.router, prefix="/api/batch", tags=["Batch"])
app.include_router(media.router, prefix="/api/media", tags=["Media"])
app.include_router(history.router, prefix="/api/history", tags=["History"])


@app.get("/api/health")
@app.get("/health")
async def health_check(controller: BatchController = Depends(batch.get_controller)):
    """Health check endpoint."""
    status = controller.status()
    return {
        "status": "healthy",
        "app": settings.app_name,
        "run_state": status.run_state.value,
        "queue_size": status.total_count,
        "active_workers": controller.dispatcher.active_count,
    }


def find_available_port(host: str, start_port: int, max_attempts: int = 10) -> int:
    """Find the first available port starting from start_port."""
    import socket
    for port in range(start_port, start_port + max_attempts):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            try:
                s.bind((host, port))
                return port
            except socket.error:
                continue
    return -1


if __name__ == "__main__":
    import uvicorn
    import sys

    # Try to find an available port starting from settings.port
    final_port = find_available_port(settings.host, settings.port)

    if final_port == -1:
        logger.critical(f"FATAL: Could not find any available ports starting from {settings.port}.")
        sys.exit(1)

    settings.port = final_port

    # Write the selected port to a discovery file for the frontend
    port_file = settings.base_dir / "backend_port.txt"
    try:
        port_file.write_text(str(final_port))
        logger.info(f"Port discovery file created at {port_file}: {final_port}")
    except OSError as e:
        logger.error(f"Failed to create port discovery file: {e}")

    logger.info(f"Starting server on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port)
