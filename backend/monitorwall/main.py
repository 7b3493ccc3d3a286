"""Monitor wall FastAPI application.

Serves cached panel data (crypto, weather, news, images, sentiment) to the
monitor wall renderer, plus cache diagnostics and reset.
"""

import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import health, data, cache
from .services.config import ConfigService, ConfigValidationException, DataServiceSettings
from .services.data_service import ConfigurationError, DataService
from .services.logging_service import configure_logging


def create_data_service(config_service: ConfigService) -> DataService:
    """Build the application's single DataService from validated config."""
    settings = DataServiceSettings.from_config(config_service.config)
    return DataService(settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    config_service = ConfigService()
    try:
        config_service.load_and_validate()
        print("Configuration validated successfully")
    except ConfigValidationException as e:
        print(f"FATAL: {e}")
        print("Server cannot start with invalid configuration.")
        sys.exit(1)

    configure_logging(
        config_service.get("logging.level", "INFO"),
        config_service.get("logging.format"),
    )

    try:
        app.state.data_service = create_data_service(config_service)
    except ConfigurationError as e:
        print(f"FATAL: {e}")
        sys.exit(1)
    print(f"Data service ready ({len(app.state.data_service.enabled_keys())} sources enabled)")

    yield

    print("Shutdown complete")


app = FastAPI(
    title="Monitor Wall API",
    description="Cached live data for the monitor wall panels",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, prefix="/api", tags=["Health"])
app.include_router(data.router, prefix="/api/data", tags=["Data"])
app.include_router(cache.router, prefix="/api/cache", tags=["Cache"])


@app.get("/")
async def root():
    """Root endpoint redirect to docs."""
    return {"message": "Monitor Wall API", "docs": "/docs"}
