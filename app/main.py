"""FastAPI application entry point."""

import logging
import os
import threading

import sqlalchemy
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import engine
from app.errors import InsufficientCredits, RunEngineError, WorkflowNotFound
from app.routes import runs

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Workflow Runs",
    description="Orchestration engine for AI model workflow runs",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(runs.router)


@app.exception_handler(RunEngineError)
async def run_engine_error_handler(request: Request, exc: RunEngineError):
    """Map engine errors that escape a route to HTTP responses."""
    if isinstance(exc, InsufficientCredits):
        status_code = 402
    elif isinstance(exc, WorkflowNotFound):
        status_code = 404
    else:
        status_code = 502
    logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


# Worker thread management
worker_threads = []
worker_stop_event = threading.Event()


def run_worker_loop():
    """Run the worker loop in a background thread."""
    from app.worker import worker_loop
    logger.info("Starting background worker thread")
    worker_loop(worker_stop_event)


@app.on_event("startup")
async def startup_event():
    """Start the background workers when the app starts."""
    logger.info("Starting application...")

    # Check if tables already exist, skip migrations if so
    try:
        table_exists = sqlalchemy.inspect(engine).has_table("jobs")

        if table_exists:
            logger.info("Database tables already exist, skipping migrations")
        else:
            # Run database migrations
            logger.info("Running database migrations...")
            from alembic import command
            from alembic.config import Config

            alembic_cfg = Config(os.path.join(os.path.dirname(os.path.dirname(__file__)), "alembic.ini"))
            command.upgrade(alembic_cfg, "head")
            logger.info("Database migrations completed successfully")
    except Exception as e:
        logger.error(f"Startup database check/migration error: {e}")
        logger.info("Continuing startup - assuming database is ready")

    # Now start workers in background threads
    logger.info(f"Starting {settings.WORKER_CONCURRENCY} background worker threads...")
    for _ in range(settings.WORKER_CONCURRENCY):
        thread = threading.Thread(target=run_worker_loop, daemon=True)
        thread.start()
        worker_threads.append(thread)
    logger.info("Background worker threads started")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop the background workers when the app shuts down."""
    logger.info("Shutting down application...")

    # Signal workers to stop
    worker_stop_event.set()

    # Wait for worker threads to finish (with timeout)
    for thread in worker_threads:
        if thread.is_alive():
            thread.join(timeout=10)
    logger.info("Background worker threads stopped")


@app.get("/health")
def health():
    """Health check: database reachability and live worker threads."""
    try:
        with engine.connect() as connection:
            connection.execute(sqlalchemy.text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {e}")
        database = "unavailable"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "database": database,
        "workers_alive": sum(1 for thread in worker_threads if thread.is_alive()),
    }


@app.get("/")
def root():
    """Root endpoint."""
    return {
        "name": "Workflow Runs",
        "version": "0.1.0",
        "status": "running",
    }
