"""
FraudFlow - FastAPI Application.

Entry point for the API server.
Run: uvicorn fraudflow.main:app --host 0.0.0.0 --port 8002 --reload

Workflow:
  - POST /api/v1/documents/analyze        ← upload + analysis + audit + alert
  - POST /api/v1/alerts/{id}/qualify      ← human verdict (risk feedback)
  - POST /api/v1/cases                    ← open an investigation case
  - GET  /api/v1/stream                   ← change notifications (SSE)
  - GET  /health                          ← health check
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fraudflow.api.routers.alerts import router as alerts_router
from fraudflow.api.routers.cases import router as cases_router
from fraudflow.api.routers.documents import router as documents_router
from fraudflow.api.routers.events import router as events_router
from fraudflow.api.routers.historiques import router as historiques_router
from fraudflow.api.routers.insights import router as insights_router
from fraudflow.api.routers.risques import router as risques_router
from fraudflow.api.routers.stream import router as stream_router
from fraudflow.config import Settings, settings as default_settings
from fraudflow.container import Container
from fraudflow.errors import FraudFlowError
from fraudflow.log_config import configure_logging
from fraudflow.middleware.error_handler import ErrorHandlerMiddleware, fraudflow_error_handler

logger = structlog.get_logger(__name__)


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or (container.settings if container else default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown."""
        configure_logging(settings)
        logger.info("fraudflow_starting", version=settings.app_version, store=settings.store_backend)
        owned = getattr(app.state, "container", None) is None
        if owned:
            app.state.container = await Container.create(settings)
        yield
        if owned:
            await app.state.container.aclose()
        logger.info("fraudflow_shutdown")

    app = FastAPI(
        title="FraudFlow",
        description=(
            "# FraudFlow - Fraud Investigation Workflow\n\n"
            "Document analysis → Event → Historique → Alert → Qualification → "
            "Risk profile, with investigation cases and team handovers."
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness probe"},
            {"name": "documents", "description": "Document upload and analysis"},
            {"name": "events", "description": "Event log"},
            {"name": "historiques", "description": "Audit log entries"},
            {"name": "alerts", "description": "Alert workflow and qualification"},
            {"name": "cases", "description": "Investigation cases"},
            {"name": "risques", "description": "Per-person risk profiles"},
            {"name": "insights", "description": "Person overview and statistics"},
            {"name": "stream", "description": "Server-Sent Events change stream"},
        ],
    )
    if container is not None:
        app.state.container = container

    # ── Middleware (last added = outermost) ────────────────────────────
    # CORS wraps the error handler so 500 responses still carry CORS headers
    app.add_middleware(ErrorHandlerMiddleware, debug=settings.debug)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(FraudFlowError, fraudflow_error_handler)

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(documents_router)
    app.include_router(events_router)
    app.include_router(historiques_router)
    app.include_router(alerts_router)
    app.include_router(cases_router)
    app.include_router(risques_router)
    app.include_router(insights_router)
    app.include_router(stream_router)

    @app.get("/health", tags=["health"])
    async def health():
        """Liveness probe. Does not call the scoring services."""
        body = {
            "status": "ok",
            "version": settings.app_version,
            "service": "fraudflow",
        }
        running = getattr(app.state, "container", None)
        if running is not None:
            body["classifier_circuit"] = running.gateway.breaker.snapshot()
        return body

    return app


app = create_app()
