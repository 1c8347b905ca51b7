"""docingest FastAPI application entry point.

Wires together the record store, blob store, tokenizer, chunker, batch
planner and job controller, stores them on ``app.state``, and mounts the
API routes.  Configuration comes from ``.env`` / environment variables via
:class:`~docingest.config.settings.Settings`.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from docingest import __version__
from docingest.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from docingest.api.routes import router as api_router
from docingest.config.settings import Settings
from docingest.providers.blob_store.local_blob_store import LocalBlobStore
from docingest.providers.embedding import build_embedding_provider
from docingest.providers.record_store.sqlite_record_store import SQLiteRecordStore
from docingest.services.ingestion.batch_planner import BatchPlanner
from docingest.services.ingestion.chunker import TextChunker
from docingest.services.ingestion.job_controller import IngestionJobController, ProviderFactory
from docingest.services.ingestion.tokenizer import TokenCounter
from docingest.utils.errors import ConfigurationError
from docingest.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)

_PLACEHOLDER_SECRET = Settings.model_fields["signed_url_secret"].default


# ---------------------------------------------------------------------------
# Full DI assembly for the FastAPI application
# ---------------------------------------------------------------------------


def _build_all(
    app_settings: Settings,
    token_counter: TokenCounter | None = None,
    provider_factory: ProviderFactory | None = None,
) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    if not app_settings.is_development and app_settings.signed_url_secret == _PLACEHOLDER_SECRET:
        raise ConfigurationError("SIGNED_URL_SECRET must be set outside development")

    # -- Storage --
    record_store = SQLiteRecordStore(db_path=Path(app_settings.record_store_path))
    blob_store = LocalBlobStore(
        root_dir=Path(app_settings.blob_store_dir),
        signing_secret=app_settings.signed_url_secret,
        base_url="/api/blobs",
    )

    # -- Chunking & batching --
    counter = token_counter or TokenCounter(model_id=app_settings.tokenizer_model)
    chunker = TextChunker(
        counter,
        chunk_size=app_settings.chunk_size,
        overlap=app_settings.chunk_overlap,
    )
    planner = BatchPlanner(
        max_item_tokens=app_settings.max_tokens_per_request,
        max_batch_tokens=app_settings.max_batch_tokens,
        max_batch_items=app_settings.max_batch_items,
    )

    job_controller = IngestionJobController(
        record_store=record_store,
        blob_store=blob_store,
        chunker=chunker,
        planner=planner,
        settings=app_settings,
        provider_factory=provider_factory or build_embedding_provider,
    )

    provider_registry: dict[str, Any] = {
        "record_store": True,
        "blob_store": True,
        "tokenizer_exact": counter.is_exact,
        "openai_server_key": bool(app_settings.openai_api_key),
        "local_embedding_model": app_settings.local_embedding_model,
    }

    return {
        "settings": app_settings,
        "record_store": record_store,
        "blob_store": blob_store,
        "token_counter": counter,
        "chunker": chunker,
        "planner": planner,
        "job_controller": job_controller,
        "provider_registry": provider_registry,
    }


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(
    app_settings: Settings | None = None,
    *,
    token_counter: TokenCounter | None = None,
    provider_factory: ProviderFactory | None = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    The keyword overrides let tests run the full stack with an offline
    tokenizer and fake embedding providers.
    """
    active_settings = app_settings or settings

    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Initialise all providers and services on startup."""
        components = _build_all(active_settings, token_counter, provider_factory)

        for key, value in components.items():
            setattr(application.state, key, value)

        await components["record_store"].initialize()

        _logger.info(
            "app_startup",
            version=__version__,
            environment=active_settings.app_env,
            tokenizer_exact=components["token_counter"].is_exact,
        )

        yield

        _logger.info("app_shutdown")

    application = FastAPI(
        title="docingest API",
        version=__version__,
        description=(
            "Turn uploaded files into token-bounded chunks, embed them with "
            "OpenAI or a local model, and track processing status."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(
        ErrorHandlingMiddleware,
        include_detail=active_settings.is_development,
    )
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "docingest.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
