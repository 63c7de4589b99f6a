"""Extscout API - Joomla! extension fingerprinting and vulnerability scanning."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from extscout.config import get_settings
from extscout.data.vulnerabilities import CatalogLoadError, load_database
from extscout.routers import health, scans

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the vulnerability catalog once for the lifetime of the app."""
    logger.info("Starting Extscout API...")
    app.state.database = None
    app.state.catalog_error = None
    try:
        app.state.database = load_database(settings.vulnerability_data_path)
    except CatalogLoadError as e:
        # Scans are refused until the catalog is fixed; health reports why
        app.state.catalog_error = str(e)
        logger.error(f"Vulnerability catalog failed to load: {e}")
    yield
    logger.info("Shutting down Extscout API...")


app = FastAPI(
    title="Extscout",
    description="Joomla! extension fingerprinting and vulnerability scanner",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(scans.router, prefix="/api", tags=["Scans"])


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Extscout",
        "version": "0.1.0",
        "description": "Joomla! extension fingerprinting and vulnerability scanner",
        "docs": "/docs",
    }


def run():
    """Serve the API with uvicorn on the configured host and port."""
    uvicorn.run(
        "extscout.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    run()
