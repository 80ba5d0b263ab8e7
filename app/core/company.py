"""Resolve the flow manager company that scopes a signed-in user."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import Settings
from app.models import User

from .envelope import BffError
from .upstream import UpstreamClient, decode_collection, expect_ok
from .validation import coerce_positive_int

logger = logging.getLogger(__name__)

COMPANIES_FETCH_FAILED = "COMPANIES_FETCH_FAILED"


def get_user_phone_number(session: Session, email: str) -> str | None:
    """Return the trimmed company phone number stored for ``email``."""

    phone = session.execute(
        select(User.phone_number).where(User.email == email.strip().lower())
    ).scalar_one_or_none()
    if phone is None:
        return None
    return phone.strip() or None


def get_company_id_for_email(
    session: Session,
    email: str,
    *,
    settings: Settings,
    upstream: UpstreamClient,
) -> int:
    """Map a user to their company id on the flow manager.

    The user's phone number is sent as ``unique_identifier`` to the companies
    collection and the first match's ``id`` (or ``company_id``) is used.

    Raises:
        BffError: ``FLOW_MANAGER_SERVICE_URL_NOT_CONFIGURED`` (500),
            ``COMPANY_NUMBER_REQUIRED`` (400), ``COMPANIES_FETCH_FAILED``
            (upstream status or 502) or ``COMPANY_ID_NOT_FOUND`` (404).
    """

    companies_url = settings.flow_manager_url("/companies")
    if companies_url is None:
        raise BffError(500, "FLOW_MANAGER_SERVICE_URL_NOT_CONFIGURED")

    unique_identifier = get_user_phone_number(session, email)
    if not unique_identifier:
        raise BffError(400, "COMPANY_NUMBER_REQUIRED")

    response = expect_ok(
        upstream.get(
            companies_url,
            error_code=COMPANIES_FETCH_FAILED,
            params=[("unique_identifier", unique_identifier)],
        ),
        COMPANIES_FETCH_FAILED,
    )
    companies = decode_collection(response.body, COMPANIES_FETCH_FAILED)

    first = companies.items[0] if companies.items else None
    company_id = None
    if isinstance(first, Mapping):
        candidate = first.get("id")
        if candidate is None:
            candidate = first.get("company_id")
        company_id = coerce_positive_int(candidate)
    if company_id is None:
        raise BffError(404, "COMPANY_ID_NOT_FOUND", response.payload)

    logger.debug("Resolved company %s for %s", company_id, email)
    return company_id


__all__ = ["get_company_id_for_email", "get_user_phone_number"]
