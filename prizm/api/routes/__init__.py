"""
API route registration.

Collects all route modules and registers them with the FastAPI application.
"""

from fastapi import FastAPI

from prizm.api.routes.management.embedding import router as embedding_router
from prizm.api.routes.system.health import router as health_router


def register_routes(app: FastAPI) -> None:
    """
    Register all API routes with the application.

    Args:
        app: The FastAPI application instance.
    """
    # System routes
    app.include_router(health_router)

    # Management API routes
    app.include_router(embedding_router)
