"""
BudgetFlow - Personal Budget Tracking Application

Main FastAPI application entry point. Configures routes, error handling
and application lifecycle events.

Version: 1.0.0
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.staticfiles import StaticFiles
from fastapi.responses import RedirectResponse, JSONResponse

# Import logging configuration (initializes logging)
from app.config import settings
from app.errors import DomainError
from app.logging_config import get_logger

# Import route modules
from app.routes import auth, home
from app.routes import transactions
from app.routes import categories
from app.routes import data

# Get logger for this module
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifecycle manager.

    Handles startup and shutdown events for the application.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"{settings.app_name} Application Starting")
    logger.info(f"Version: {app.version} ({settings.environment})")
    logger.info("=" * 60)

    yield  # Application runs here

    # Shutdown
    logger.info(f"{settings.app_name} Application Shutting Down")
    logger.info("=" * 60)


# Create FastAPI application instance
app = FastAPI(
    title=settings.app_name,
    description="Personal budget tracking with recurring transactions, categories and CSV import/export.",
    version="1.0.0",
    lifespan=lifespan
)


async def domain_error_handler(request: Request, exc: DomainError):
    """Map domain errors to ``{"error": message}`` with the error's status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc}")
    return JSONResponse({"error": str(exc)}, status_code=exc.status_code)


app.add_exception_handler(DomainError, domain_error_handler)


@app.get("/")
async def root():
    return RedirectResponse(url="/home")


# Mount static files directory
app.mount("/static", StaticFiles(directory="app/static"), name="static")

# Include route modules
app.include_router(auth.router, tags=["Authentication"])
app.include_router(home.router, tags=["Dashboard"])
app.include_router(transactions.router, tags=["Transactions"])
app.include_router(categories.router, tags=["Categories"])
app.include_router(data.router, tags=["Import & Export"])

logger.info("All routes registered successfully")
