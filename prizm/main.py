"""
FastAPI application entry point.

Creates the application and owns the embedding service for its lifetime.
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from prizm import __version__
from prizm.api.exception_handlers import generic_exception_handler, prizm_error_handler
from prizm.api.routes import register_routes
from prizm.core.config import Settings, settings as default_settings
from prizm.core.errors import PrizmError
from prizm.core.logging import get_logger, setup_logging
from prizm.ml.embedding_backend import TransformersEmbeddingBackend
from prizm.services.embedding_service import EmbeddingService
from prizm.services.memory_index import MemoryIndex

logger = get_logger(__name__)


async def _init_embedding(service: EmbeddingService) -> None:
    """Load the embedding model in the background after startup."""
    try:
        await service.init()
    except Exception as e:
        logger.error("embedding_init_failed", error=str(e), exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan handler.

    Starts loading the embedding model without blocking startup and
    releases it on shutdown.
    """
    config: Settings = app.state.settings
    service: EmbeddingService = app.state.embedding_service

    setup_logging(config)
    logger.info(
        "application_starting",
        version=__version__,
        debug=config.DEBUG,
        embedding_enabled=config.EMBEDDING_ENABLED,
    )

    init_task = asyncio.create_task(_init_embedding(service))

    yield

    logger.info("application_shutting_down")

    if not init_task.done():
        init_task.cancel()
    await service.dispose()

    backend = app.state.owned_backend
    if backend is not None:
        backend.shutdown()


def create_app(
    embedding_service: Optional[EmbeddingService] = None,
    config: Optional[Settings] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        embedding_service: Service to expose. When omitted, one is built
            with the transformers backend and a fresh MemoryIndex.
        config: Settings to use. Defaults to the service's settings, then
            the global settings instance.

    Returns:
        Configured FastAPI application instance.
    """
    config = config or (embedding_service.settings if embedding_service else default_settings)

    owned_backend: Optional[TransformersEmbeddingBackend] = None
    if embedding_service is None:
        owned_backend = TransformersEmbeddingBackend(
            max_workers=config.MAX_LOAD_WORKERS,
            hf_token=config.HF_TOKEN,
        )
        embedding_service = EmbeddingService(
            config,
            backend=owned_backend,
            memory_index=MemoryIndex(),
        )

    app = FastAPI(
        title="Prizm Embedding API",
        description="""
## Prizm local embedding service

Loads a small sentence-embedding model on this machine and provides
vectors for memory indexing.

### Error Handling

All errors return a standard response format:
```json
{
    "success": false,
    "error": {
        "code": "MODEL_NOT_READY",
        "message": "User-friendly message",
        "details": {"technical_message": "..."}
    }
}
```
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        openapi_tags=[
            {
                "name": "embedding",
                "description": "Local embedding model status, testing, benchmark and reload",
            },
            {
                "name": "system",
                "description": "System health and status endpoints",
            },
        ],
    )

    app.state.settings = config
    app.state.embedding_service = embedding_service
    app.state.owned_backend = owned_backend

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(PrizmError, prizm_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    register_routes(app)

    return app


def run() -> None:
    """
    Run the application with Uvicorn.

    This is the entry point for the `prizm` command.
    """
    import uvicorn

    uvicorn.run(
        "prizm.main:create_app",
        factory=True,
        host=default_settings.HOST,
        port=default_settings.PORT,
        reload=default_settings.DEBUG,
        log_level=default_settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
