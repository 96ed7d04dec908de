"""
FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from ecomeasure.config import settings
from ecomeasure.api.rate_limiting import limiter
from ecomeasure.api.v1.routers import analyses
from ecomeasure.middleware.error_handler import ErrorHandlerMiddleware

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Logs the effective configuration on startup.
    """
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Log level: {settings.log_level}")
    logger.info(f"Analysis defaults: canopy_method={settings.default_canopy_method.value}, "
                f"zenith_angle={settings.default_zenith_angle}, "
                f"vegetation_method={settings.default_vegetation_method.value}")
    logger.info(f"Batch config: concurrency={settings.batch_concurrency}, "
                f"timeout={settings.batch_timeout_seconds}, offload={settings.offload_analysis}")
    logger.info(f"Rate limit: {settings.rate_limit_requests} requests/minute")

    yield

    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Vegetation Photo Analysis API for Field Ecology

    This API turns field photographs into ecological measurements.

    ## Features

    - **Canopy Cover**: Canopy cover, light transmission and leaf area index
      from upward-facing photos, restricted to a zenith cone
    - **Horizontal Vegetation**: Vegetation density profiles from photos of a
      profile board taken at several heights
    - **Ground Cover**: Daubenmire quadrat composition (vegetation, bare ground,
      litter, rock) with Shannon diversity and evenness
    - **Batch Analysis**: Many canopy photos at once, with per-file failures
    - **Rate Limiting**: Protects the API from abuse

    ## Classification Methods

    Pixels are classified with one of a fixed set of colour rules
    (brightness/greenness, colour ratio, custom brightness, colour threshold,
    Sobel edge detection, HSV heuristic). See `/api/v1/analyses/methods`.
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware with configurable origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add global error handling middleware
app.add_middleware(ErrorHandlerMiddleware)

# Include routers
app.include_router(analyses.router, prefix="/api/v1")


@app.get("/", tags=["health"])
async def root():
    """
    Root endpoint for health check.

    Returns:
        Status message
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
    }


@app.get("/health", tags=["health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        Health status
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
    }
