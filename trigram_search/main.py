# trigram_search/main.py
# Responsibility: Application entry point. Configures and launches the FastAPI app.

import logging

import uvicorn
from fastapi import FastAPI

from trigram_search.config.settings import settings
from trigram_search.routers import search

VERSION = "1.0.0"


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app() -> FastAPI:
    """
    Factory function to create and configure the FastAPI application.
    """
    configure_logging()

    app = FastAPI(
        title="Trigram Search Engine",
        description="Tiered PostgreSQL search with hybrid racing and typo/layout fallbacks.",
        version=VERSION,
        debug=settings.SERVER.DEBUG
    )

    # Register Routers
    app.include_router(search.router)

    # Health Check
    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "ok", "version": VERSION, "tier": settings.ENGINE.TIER.upper()}

    return app

# Application instance
app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "trigram_search.main:app",
        host=settings.SERVER.HOST,
        port=settings.SERVER.PORT,
        reload=settings.SERVER.DEBUG
    )
