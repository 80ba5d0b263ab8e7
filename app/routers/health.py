"""Database health probe."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.envelope import BffError, envelope_response
from app.security import get_db_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/health", tags=["health"])

SessionDep = Annotated[Session, Depends(get_db_session)]


@router.get("/db")
def database_health(session: SessionDep) -> JSONResponse:
    try:
        session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.exception("Database health check failed")
        raise BffError(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_UNAVAILABLE", str(exc)
        ) from exc
    return envelope_response({"ok": True})
