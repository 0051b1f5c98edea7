"""
FastAPI Application Entry Point.

This is the main application file for the Transport Planner Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from transport_planner.app.core.config import settings
from transport_planner.app.api.v1.router import router as api_v1_router
from transport_planner.app.db.session import engine, Base
from transport_planner.app.core.observability import configure_logging, ObservabilityMiddleware
from transport_planner.app.core.redis_client import ping_redis
from transport_planner.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from transport_planner.app.models.user import User
from transport_planner.app.models.customer import Customer
from transport_planner.app.models.driver import Driver
from transport_planner.app.models.fleet_vehicle import Vehicle
from transport_planner.app.models.fleet_route import Route  # after customer for FK
from transport_planner.app.models.route_template import RouteTemplate
from transport_planner.app.models.occurrence_override import OccurrenceOverride
from transport_planner.app.models.conflict_check import ConflictCheck
from transport_planner.app.models.smart_suggestion import SmartSuggestion
from transport_planner.app.models.route_distance import RouteDistance
from transport_planner.app.models.suggestion_config import SuggestionConfig
from transport_planner.app.models.route_alert import RouteAlert
from transport_planner.app.models.route_responsibility import RouteResponsibility
from transport_planner.app.models.support_offer import SupportOffer
from transport_planner.app.models.audit_log import AuditLog
from transport_planner.app.models.dlq import DeadLetterQueue

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s %s started", settings.app_name, settings.api_version)
    yield


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Route template scheduling, conflict detection and consolidation suggestions",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and cache reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "cache": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Transport Planner Backend API",
        "docs": "/docs",
        "health": "/health",
    }
