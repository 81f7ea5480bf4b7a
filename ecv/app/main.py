import sys
import logging

from contextlib import asynccontextmanager
from importlib.metadata import version, PackageNotFoundError
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from ecv.app.api.documents import router as documents_router
from ecv.app.config import Settings
from ecv.app.pipeline.orchestrator import DocumentPipeline
from ecv.app.services.page_renderer import PageRenderer
from ecv.app.services.record_source import build_http_client

logger = logging.getLogger("ecv.main")


def get_app_version() -> str:
    """
    Resolve application version deterministically.

    Falls back to the source version when the package is not installed.
    """
    try:
        return version("ecv-document-engine")
    except PackageNotFoundError:
        return "1.0.0"


def create_app(
    settings: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.Client] = None,
    page_renderer: Optional[PageRenderer] = None,
) -> FastAPI:
    """
    Application factory for the document engine.

    ``settings``, ``http_client`` and ``page_renderer`` are resolved at
    startup when not given.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Guarantees:
        - Fail-fast startup if configuration is invalid
        - One pooled HTTP client shared by all runs
        - One pipeline instance; runs share no mutable state
        """
        logger.info(
            "document_engine_startup_begin",
            extra={"service": "ecv", "version": get_app_version()},
        )

        # ------------------------------------------------------------------
        # Load and validate configuration (FAIL FAST)
        # ------------------------------------------------------------------
        try:
            resolved = settings if settings is not None else Settings()
        except Exception:
            logger.exception("invalid_engine_configuration")
            raise

        resolved.temp_dir.mkdir(parents=True, exist_ok=True)

        app.state.settings = resolved
        # Only a client built here is closed at shutdown.
        owns_client = http_client is None
        app.state.http_client = (
            build_http_client(resolved) if owns_client else http_client
        )
        app.state.pipeline = DocumentPipeline.from_settings(
            resolved,
            http_client=app.state.http_client,
            page_renderer=page_renderer,
        )

        logger.info(
            "document_engine_ready",
            extra={
                "record_source_url": str(resolved.record_source_url),
                "debug_xml": resolved.debug_xml,
            },
        )

        try:
            yield
        finally:
            logger.info("document_engine_shutdown_begin")
            if owns_client:
                try:
                    app.state.http_client.close()
                except Exception:
                    logger.warning("http_client_shutdown_failed")

    app = FastAPI(
        title="eCV Document Engine",
        description="eCV and Faculty Annual Report document generation.",
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.include_router(documents_router)

    @app.get(
        "/healthz",
        tags=["Monitoring"],
        summary="Liveness and readiness probe",
    )
    async def health_check():
        """Does NOT contact the record system."""
        return ORJSONResponse(
            content={
                "status": "ok",
                "service": "ecv",
                "version": app.version,
                "runtime": f"python {sys.version.split()[0]}",
            }
        )

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn (``ecv-engine`` console script)."""
    import uvicorn

    settings = Settings()
    uvicorn.run("ecv.app.main:app", host=settings.host, port=settings.port)
