"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import health, queue, runs
from core.config import settings
from core.database import Database
from core.exceptions import ConfigurationError, ETLException
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.scheduler import ETLScheduler
from schemas.api import ErrorResponse

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Stock Batch ETL API",
    description="Operator API for the bounded-batch stock ETL task queue",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Initialize Scheduler
scheduler = ETLScheduler()


# Include routers
app.include_router(health.router)
app.include_router(queue.router)
app.include_router(runs.router)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid configuration", detail=exc.message).model_dump(mode="json")
    )


@app.exception_handler(ETLException)
async def etl_exception_handler(request: Request, exc: ETLException):
    logger.error(f"Request failed: {exc.message}", extra={"error_context": exc.to_dict()})
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Queue operation failed", detail=exc.message).model_dump(mode="json")
    )


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Stock Batch ETL API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    if settings.DATABASE_URL:
        app.state.database = await Database(settings.DATABASE_URL).open()
    else:
        logger.warning("DATABASE_URL not set - database endpoints will return 503")

    if settings.ETL_SCHEDULER_ENABLED:
        scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Stock Batch ETL API")
    scheduler.stop()

    database = getattr(app.state, "database", None)
    if database is not None:
        await database.close()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Stock Batch ETL API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "queue": "/queue/progress",
            "entries": "/queue/entries",
            "runs": "/runs"
        }
    }
