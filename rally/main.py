import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logfire

from rally.config import settings
from rally.database import init_db, close_db
from rally.errors import WakeUpError
from rally.api import api_router

logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)

# Initialize Logfire - auto-instruments FastAPI and httpx
if settings.logfire_token:
    logfire.configure(
        token=settings.logfire_token,
        service_name="rally-wakeup-api",
        environment=settings.app_env,
        console=False,  # Disable console logging (too verbose)
    )
    logfire.instrument_httpx()
    logger.info("Logfire initialized")
else:
    logger.info("Logfire token not set - observability disabled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Rally Wake-Up Calls API...")
    await init_db()
    logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


app = FastAPI(
    title=settings.app_name,
    description="Scheduled voice wake-up calls with snooze negotiation",
    version="1.0.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
if settings.logfire_token:
    logfire.instrument_fastapi(app)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(WakeUpError)
async def wakeup_error_handler(request: Request, exc: WakeUpError):
    """Map domain errors to HTTP responses."""
    logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "database": "connected",
        "twilio": "configured" if settings.twilio_configured else "not_configured",
    }
