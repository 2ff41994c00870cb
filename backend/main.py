"""
Rewrite Agent Backend - FastAPI Application Entry Point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routers import config, diff, documents
from services.config_manager import ConfigManager

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - startup and shutdown logic"""
    # Startup: Initialize singleton services
    logger.info("Starting Rewrite Agent Backend...")
    config_manager = ConfigManager.get_instance()
    logger.info("ConfigManager initialized (provider: %s)", config_manager.get("provider"))

    yield
    # Shutdown: Cleanup
    logger.info("Shutting down Rewrite Agent Backend...")


app = FastAPI(
    title="Rewrite Agent Backend",
    description="Rewrite operations with word-level diff previews",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware for the editor frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(documents.router, prefix="/api/documents", tags=["documents"])
app.include_router(diff.router, prefix="/api/diff", tags=["diff"])
app.include_router(config.router, prefix="/api/config", tags=["config"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "service": "rewrite-agent-backend"}


def run():
    import uvicorn

    server = ConfigManager.get_instance().get("server", {})
    uvicorn.run(app, host=server.get("host", "0.0.0.0"), port=server.get("port", 8000))


if __name__ == "__main__":
    run()
