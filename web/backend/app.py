#!/usr/bin/env python3
"""
Metadata Audit API - FastAPI Application

Usage:
    python -m web.backend.app

Then open:
    - http://localhost:8080/docs - API Documentation (Swagger UI)
    - http://localhost:8080/redoc - Alternative API Documentation
"""

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException

from audit_engine.app_context import AppContext
from audit_engine.exceptions import AuditEngineError
from .config import get_config
from .exceptions import (
    ServiceException,
    service_exception_handler,
    audit_engine_exception_handler,
    http_exception_handler,
    general_exception_handler
)
from .routers import rulesets_router, audits_router

logger = logging.getLogger(__name__)


def create_app(app_context: Optional[AppContext] = None) -> FastAPI:
    """Create the API; builds a database-backed context when none is given."""
    if app_context is None:
        app_context = AppContext.build(get_config())

    app = FastAPI(
        title="Metadata Audit API",
        description="Ruleset management and metadata audits",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.app_context = app_context

    # Register exception handlers
    app.add_exception_handler(ServiceException, service_exception_handler)
    app.add_exception_handler(AuditEngineError, audit_engine_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # Include routers
    app.include_router(rulesets_router)
    app.include_router(audits_router)

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        cache = app_context.cache
        return {
            "status": "healthy",
            "service": "metadata-audit",
            "cache": cache.get_cache_stats() if cache is not None else None,
        }

    return app


def main():
    """Run the web server."""
    import uvicorn

    config = get_config()
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format=config.logging.format
    )
    logger.info(f"Starting Metadata Audit API on {config.web.host}:{config.web.port}")
    logger.info(f"API Docs: http://{config.web.host}:{config.web.port}/docs")

    uvicorn.run(
        "web.backend.app:create_app",
        factory=True,
        host=config.web.host,
        port=config.web.port,
        reload=False,
        log_level="info"
    )


if __name__ == "__main__":
    main()
