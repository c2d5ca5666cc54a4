"""FastAPI application: service wiring, lifespan and routers."""

from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any

import structlog
from fastapi import FastAPI, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from sigil.api.routes import admin, generations, models
from sigil.core import timezone  # noqa: F401  (sets TZ=UTC)
from sigil.core.config import Settings, configure_logging
from sigil.core.database import setup_db_session
from sigil.services.generation.dispatch import HttpGenerationDispatcher
from sigil.services.generation.lifecycle import GenerationLifecycle
from sigil.services.models.registry import create_default_registry
from sigil.services.models.routing import ProviderCredentials
from sigil.services.storage.output_persistence import OutputPersistence
from sigil.services.storage.supabase_client import SupabaseStorageClient
from sigil.uow import create_uow_factory

logger = structlog.get_logger()


def build_services(app: FastAPI, settings: Settings, session_factory) -> None:
    """Wire the generation services onto app.state.

    Everything is built once per process; routes read it through the
    dependencies in sigil.api.dependencies.
    """
    uow_factory = create_uow_factory(session_factory)
    registry = create_default_registry(settings)

    storage = None
    if settings.supabase_url and settings.supabase_service_role_key:
        storage = SupabaseStorageClient(
            settings.supabase_url,
            settings.supabase_service_role_key,
            bucket=settings.storage_bucket,
        )
    else:
        logger.warning("startup.storage_disabled", reason="supabase_not_configured")

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.uow_factory = uow_factory
    app.state.registry = registry
    app.state.lifecycle = GenerationLifecycle(
        uow_factory=uow_factory,
        registry=registry,
        credentials=ProviderCredentials.from_settings(settings),
        persistence=OutputPersistence(storage, gemini_api_key=settings.gemini_api_key),
        heartbeat_interval_seconds=settings.heartbeat_interval_seconds,
    )
    app.state.dispatcher = HttpGenerationDispatcher(
        max_attempts=settings.dispatch_max_attempts,
        retry_base_delay_seconds=settings.dispatch_retry_base_delay_seconds,
        dispatch_secret=settings.dispatch_secret,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build services on startup; let detached dispatches finish on shutdown."""
    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    build_services(app, settings, session_factory)

    logger.info(
        "application.startup",
        db_host=settings.database_url.rsplit("@", 1)[-1],
        models=len(app.state.registry.get_all_models()),
        providers=asdict(ProviderCredentials.from_settings(settings)),
    )

    yield

    logger.info("application.shutdown", pending_dispatches=app.state.dispatcher.pending)
    await app.state.dispatcher.drain()


def create_app() -> FastAPI:
    settings = Settings()  # type: ignore[call-arg]

    app = FastAPI(
        title="Sigil Generation API",
        description="Image and video generation lifecycle service",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(generations.router)
    app.include_router(models.router)
    app.include_router(admin.router)

    @app.get("/health")
    async def health_check(response: Response) -> dict[str, Any]:
        """Report database reachability and which providers are configured.

        Answers 503 when the database cannot be queried.
        """
        current = app.state.settings
        try:
            async with app.state.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("health.database_unreachable", error_type=type(e).__name__, error=str(e))
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {"status": "unhealthy", "database": "unreachable", "error": type(e).__name__}

        return {
            "status": "healthy",
            "database": "ok",
            "providers": asdict(ProviderCredentials.from_settings(current)),
            "storage": bool(current.supabase_url and current.supabase_service_role_key),
        }

    return app


app = create_app()
