"""
FastAPI application initialization
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from api.routes import health, runs
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.database import database_label, dispose_engine
from core.logging import setup_logging
from pipeline.scheduler import SyncScheduler
import logging

setup_logging()
logger = logging.getLogger(__name__)

scheduler = SyncScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting timesheet sync service")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {database_label()}")
    scheduler.start()
    yield
    logger.info("Shutting down timesheet sync service")
    scheduler.stop()
    await dispose_engine()


app = FastAPI(
    title="Timesheet Sync Service",
    description="Scheduled timesheet and HR sync with run metadata endpoints",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(RequestContextMiddleware)

app.include_router(health.router)
app.include_router(runs.router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Timesheet Sync Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "runs": "/runs"
        }
    }
