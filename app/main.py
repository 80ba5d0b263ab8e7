"""FastAPI application wiring for the inbox flow BFF.

This module assembles the HTTP API consumed by the admin UI:

- Configures logging, CORS (optional for the admin UI), Prometheus metrics
  and rate limiting on the credential endpoints.
- Builds process-wide resources (settings, database engine, upstream HTTP
  client) in the lifespan and releases them on shutdown.
- Mounts the routers that proxy the flow-manager and communications
  services on behalf of the signed-in user, plus the local auth, health and
  dashboard endpoints.

Every proxied route answers with the ``{data, error, meta}`` envelope; the
handlers installed by :func:`app.core.envelope.install_exception_handlers`
turn raised errors into the same shape.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import requests
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import Engine

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .config import Settings, get_settings
from .core.envelope import install_exception_handlers
from .core.limiter import limiter
from .resources import AppResources
from .routers import (
    auth_api,
    condition_properties,
    conditions,
    dashboard,
    edges,
    health,
    humans,
    messages,
    meta_outbound,
    node_properties,
    nodes,
    notification_recipients,
    notifications,
    properties,
    sessions,
)

load_dotenv()

logger = logging.getLogger(__name__)

ROUTERS = (
    auth_api.router,
    nodes.router,
    node_properties.router,
    properties.router,
    edges.router,
    conditions.router,
    condition_properties.router,
    notifications.router,
    notification_recipients.router,
    sessions.router,
    messages.router,
    meta_outbound.router,
    dashboard.router,
    humans.router,
    health.router,
)


def create_app(
    settings: Settings | None = None,
    *,
    engine: Engine | None = None,
    http_session: requests.Session | None = None,
) -> FastAPI:
    """Build the application.

    ``engine`` and ``http_session`` let tests inject an in-memory database
    and a fake upstream transport; production leaves both unset.
    """

    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "resources", None) is None
        if owned:
            app.state.resources = AppResources.create(
                settings, engine=engine, http_session=http_session
            )
            logger.info("Application resources initialised (env=%s)", settings.app_env)
        try:
            yield
        finally:
            if owned:
                app.state.resources.close()
                app.state.resources = None

    app = FastAPI(title="Inbox Flow BFF", version=__version__, lifespan=lifespan)
    init_logging(app)
    install_exception_handlers(app)
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    # Optional CORS for admin UI
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.cors_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    for router in ROUTERS:
        app.include_router(router)

    # Expose Prometheus metrics; a registry per app keeps repeated factory
    # calls from colliding on collector names.
    Instrumentator(registry=CollectorRegistry()).instrument(app).expose(
        app, include_in_schema=False, endpoint="/api/metrics"
    )

    @app.get("/api/health")
    async def health_check():
        """Liveness probe with a minimal JSON body."""
        return {"status": "ok"}

    @app.get("/api/version")
    async def version():
        """Return version information for the application."""
        return {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    return app


app = create_app()
