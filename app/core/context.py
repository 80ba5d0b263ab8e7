"""Per-request context handed to BFF route handlers."""

from __future__ import annotations

import dataclasses

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.config import Settings
from app.resources import AppResources, get_resources
from app.security.auth import get_db_session, require_session_email

from .company import get_company_id_for_email
from .envelope import BffError
from .upstream import QueryItems, UpstreamClient, merge_query

FLOW_MANAGER_NOT_CONFIGURED = "FLOW_MANAGER_SERVICE_URL_NOT_CONFIGURED"
COMMUNICATIONS_NOT_CONFIGURED = "COMMUNICATIONS_WEB_URL_NOT_CONFIGURED"


@dataclasses.dataclass
class BffContext:
    """Authenticated caller plus the handles a proxy route needs.

    The company id is looked up lazily and at most once per request so routes
    can validate their input before paying for the lookup.
    """

    email: str
    settings: Settings
    upstream: UpstreamClient
    db: Session
    request: Request
    _company_id: int | None = dataclasses.field(default=None, init=False, repr=False)

    def company_id(self) -> int:
        if self._company_id is None:
            self._company_id = get_company_id_for_email(
                self.db, self.email, settings=self.settings, upstream=self.upstream
            )
        return self._company_id

    def flow_manager_url(
        self, resource: str, *, not_configured_code: str = FLOW_MANAGER_NOT_CONFIGURED
    ) -> str:
        """Resolve a flow manager collection URL or fail with a 500."""

        url = self.settings.flow_manager_url(resource)
        if url is None:
            raise BffError(500, not_configured_code)
        return url

    def communications_url(
        self, *segments: str, not_configured_code: str = COMMUNICATIONS_NOT_CONFIGURED
    ) -> str:
        url = self.settings.communications_url(*segments)
        if url is None:
            raise BffError(500, not_configured_code)
        return url

    def forwarded_query(
        self, forced: dict[str, object] | None = None, *, exclude: tuple[str, ...] = ()
    ) -> QueryItems:
        """Incoming query items with server-derived ``forced`` values on top."""

        return merge_query(self.request.query_params.multi_items(), forced, exclude=exclude)


def get_bff_context(
    request: Request,
    email: str = Depends(require_session_email),
    session: Session = Depends(get_db_session),
    resources: AppResources = Depends(get_resources),
) -> BffContext:
    return BffContext(
        email=email,
        settings=resources.settings,
        upstream=resources.upstream,
        db=session,
        request=request,
    )


__all__ = [
    "BffContext",
    "COMMUNICATIONS_NOT_CONFIGURED",
    "FLOW_MANAGER_NOT_CONFIGURED",
    "get_bff_context",
]
