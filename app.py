"""Main FastAPI application for the SourceHub plugin service."""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv('.env')

# Configure logging BEFORE importing any modules that use logger
log_level = os.getenv('LOG_LEVEL', 'INFO')
logging.basicConfig(
    level=getattr(logging, log_level.upper()),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Import after logging is configured
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sourcehub.routers import plugins_router

# Create FastAPI app
app = FastAPI(
    title="SourceHub",
    description="Runtime loader for remotely published content-source plugins",
    version="1.0.0"
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(plugins_router)  # /api/plugins endpoints


@app.get("/")
async def root():
    """Service banner."""
    return {"message": "SourceHub Plugin Service", "docs": "/docs"}


@app.on_event("startup")
async def startup_event():
    """Application startup event."""
    from sourcehub.constants import CATALOG_URLS, INSTALLED_PLUGINS_FILE
    from sourcehub.dependencies import get_plugin_manager

    logger.info("Starting SourceHub")
    logger.info(f"Working directory: {Path.cwd()}")
    logger.info(f"Catalog mirrors: {', '.join(CATALOG_URLS)}")
    logger.info(f"Installed plugins file: {INSTALLED_PLUGINS_FILE}")

    manager = get_plugin_manager()
    try:
        await manager.restore_installed()
    except Exception as e:
        logger.error(f"Failed to restore installed plugins: {e}")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event."""
    from sourcehub.dependencies import get_plugin_manager

    logger.info("Shutting down SourceHub")
    await get_plugin_manager().shutdown()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "9090"))
    uvicorn.run("app:app", host="0.0.0.0", port=port, reload=True)
