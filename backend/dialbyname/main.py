"""
Dial-by-Name Directory - Backend Entrypoint

FastAPI application factory and server configuration.
Run with: uvicorn dialbyname.main:app --reload
"""

from contextlib import asynccontextmanager
import logging
from typing import Optional

from fastapi import FastAPI

from dialbyname import __version__
from dialbyname.api import health
from dialbyname.config import Settings, get_settings
from dialbyname.core.cache import ResultCache
from dialbyname.core.catalog import UserSource
from dialbyname.core.logging import setup_structured_logging
from dialbyname.directory import DirectoryClient
from dialbyname.telephony import router as telephony_router
from dialbyname.telephony.flow import CallFlowController
from dialbyname.telephony.providers import WebResponderRenderer
from dialbyname.telephony.session_store import CallSessionStore, create_session_store

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    source: Optional[UserSource] = None,
    session_store: Optional[CallSessionStore] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Settings to run with (defaults to get_settings())
        source: Directory source; a DirectoryClient is built when omitted
        session_store: Session store; selected by settings when omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Startup:
            - Configure logging
            - Build the directory client, result cache and session store
            - Wire the call flow controller

        Shutdown:
            - Stop the session store
            - Close the directory client
        """
        # === Startup ===
        setup_structured_logging(settings.app_log_level, settings.log_json_format)
        logger.info("Dial-by-name directory starting in %s mode", settings.app_env)

        owns_source = source is None
        directory = source if source is not None else DirectoryClient.from_settings(settings)

        cache = None
        if settings.cache_enabled:
            cache = ResultCache(
                settings.cache_dir,
                ttl_seconds=settings.cache_ttl_seconds,
                purge_chance=settings.cache_purge_chance,
            )

        store = session_store if session_store is not None else create_session_store(settings)
        await store.start()

        app.state.settings = settings
        app.state.cache = cache
        app.state.session_store = store
        app.state.renderer = WebResponderRenderer()
        app.state.controller = CallFlowController(
            settings=settings,
            source=directory,
            store=store,
            cache=cache,
        )

        logger.info(
            "Directory API: host=%s, page_limit=%d, max_pages=%d",
            settings.ns_api_host,
            settings.api_page_limit,
            settings.api_max_pages,
        )
        logger.info(
            "Cache: enabled=%s, dir=%s, ttl=%ds; sessions: backend=%s",
            settings.cache_enabled,
            settings.cache_dir,
            settings.cache_ttl_seconds,
            settings.session_backend,
        )

        yield

        # === Shutdown ===
        logger.info("Dial-by-name directory shutting down")
        await store.stop()
        if owns_source:
            await directory.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title="Dial-by-Name Directory",
        description="Web responder webhook for dial-by-name phone directories",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )

    # --- Routes ---
    app.include_router(telephony_router.router)
    app.include_router(health.router)

    # --- Health check at root ---
    @app.get("/")
    async def root():
        """Root health check."""
        return {
            "service": "Dial-by-Name Directory",
            "status": "operational",
            "version": __version__,
        }

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "dialbyname.main:app",
        host=_settings.backend_host,
        port=_settings.backend_port,
        workers=_settings.backend_workers,
    )
