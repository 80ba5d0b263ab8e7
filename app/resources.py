"""Process-wide resources built once at startup and torn down at shutdown."""

from __future__ import annotations

import dataclasses
import logging

import requests
from fastapi import Request
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import Settings
from app.core.upstream import UpstreamClient
from app.models.session import get_engine, get_sessionmaker

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class AppResources:
    """Handles shared by every request.

    Built explicitly by the application lifespan and stored on
    ``app.state.resources``; routes reach them through dependencies.
    """

    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    upstream: UpstreamClient

    @classmethod
    def create(
        cls,
        settings: Settings,
        *,
        engine: Engine | None = None,
        http_session: requests.Session | None = None,
    ) -> "AppResources":
        engine = engine or get_engine(settings.database_url)
        return cls(
            settings=settings,
            engine=engine,
            session_factory=get_sessionmaker(engine),
            upstream=UpstreamClient(http_session, timeout=settings.upstream_timeout_seconds),
        )

    def close(self) -> None:
        self.upstream.close()
        self.engine.dispose()
        logger.info("Application resources released")


def get_resources(request: Request) -> AppResources:
    resources = getattr(request.app.state, "resources", None)
    if resources is None:
        raise RuntimeError("Application resources are not initialised.")
    return resources


__all__ = ["AppResources", "get_resources"]
