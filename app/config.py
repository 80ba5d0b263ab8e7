"""Runtime configuration loaded from environment variables.

Settings are read once per process through :func:`get_settings` and cached;
tests call :func:`reset_settings_cache` after changing the environment.
``python-dotenv`` is honoured so local development can rely on a ``.env``
file.
"""

from __future__ import annotations

import dataclasses
import os
import re
from functools import lru_cache
from urllib.parse import urlsplit, urlunsplit

from dotenv import load_dotenv

DEFAULT_SESSION_SECRET = "dev-secret"
DEFAULT_SESSION_TTL_SECONDS = 60 * 60 * 24 * 7

# Resource names the flow manager URL may already end with.
_FLOW_MANAGER_RESOURCE_RE = re.compile(
    r"(condition-properties|node-properties|conditions|properties|companies|edges|nodes)$",
    re.IGNORECASE,
)


def resolve_service_url(raw: str | None, resource: str) -> str | None:
    """Point ``raw`` at ``resource`` on the same service.

    ``raw`` may be either a bare base URL (``http://flow:8000/api``) or a full
    endpoint for one of the known resources (``http://flow:8000/api/nodes``),
    in which case that resource segment is swapped for ``resource``. The
    result always ends with a slash. Returns ``None`` when ``raw`` is empty or
    not an absolute URL.
    """

    if not raw or not raw.strip():
        return None
    parts = urlsplit(raw.strip())
    if not parts.scheme or not parts.netloc:
        return None

    clean_resource = "/" + resource.strip("/")
    base_path = _FLOW_MANAGER_RESOURCE_RE.sub("", parts.path.rstrip("/")).rstrip("/")
    path = f"{base_path}{clean_resource}/"
    return urlunsplit((parts.scheme, parts.netloc, path, parts.query, ""))


def _get_optional_float(name: str) -> float | None:
    value = os.getenv(name, "").strip()
    if not value:
        return None
    return float(value)


@dataclasses.dataclass(frozen=True)
class Settings:
    """Process-wide configuration for the BFF."""

    flow_manager_service_url: str | None = None
    communications_web_url: str | None = None
    database_url: str | None = None
    session_secret: str = DEFAULT_SESSION_SECRET
    session_cookie_name: str = "session_token"
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    session_algorithm: str = "HS256"
    app_env: str = "development"
    cache_max_age_seconds: int = 30
    upstream_timeout_seconds: float | None = None
    login_rate_limit: str = "10/minute"
    cors_origins: tuple[str, ...] = ()

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    def flow_manager_url(self, resource: str) -> str | None:
        """Return the flow manager collection URL for ``resource``."""

        return resolve_service_url(self.flow_manager_service_url, resource)

    def communications_url(self, *segments: str) -> str | None:
        """Return ``COMMUNICATIONS_WEB_URL`` joined with ``segments``."""

        if not self.communications_web_url:
            return None
        base = self.communications_web_url.rstrip("/")
        path = "/".join(segment.strip("/") for segment in segments if segment)
        return f"{base}/{path}" if path else base


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment.

    Raises:
        RuntimeError: If ``APP_ENV=production`` and ``SESSION_SECRET`` is unset.
    """

    load_dotenv()

    app_env = os.getenv("APP_ENV", "development").strip().lower()
    secret = os.getenv("SESSION_SECRET", "").strip()
    if not secret:
        if app_env == "production":
            raise RuntimeError("SESSION_SECRET must be set when APP_ENV=production.")
        secret = DEFAULT_SESSION_SECRET

    origins = tuple(
        origin.strip()
        for origin in os.getenv("ADMIN_UI_ORIGINS", "").split(",")
        if origin.strip()
    )

    return Settings(
        flow_manager_service_url=os.getenv("FLOW_MANAGER_SERVICE_URL", "").strip() or None,
        communications_web_url=os.getenv("COMMUNICATIONS_WEB_URL", "").strip() or None,
        database_url=os.getenv("DATABASE_URL", "").strip() or None,
        session_secret=secret,
        session_cookie_name=os.getenv("SESSION_COOKIE_NAME", "session_token"),
        session_ttl_seconds=int(
            os.getenv("SESSION_TTL_SECONDS", str(DEFAULT_SESSION_TTL_SECONDS))
        ),
        session_algorithm=os.getenv("SESSION_ALGORITHM", "HS256"),
        app_env=app_env,
        cache_max_age_seconds=int(os.getenv("BFF_CACHE_SECONDS", "30")),
        upstream_timeout_seconds=_get_optional_float("UPSTREAM_TIMEOUT_SECONDS"),
        login_rate_limit=os.getenv("LOGIN_RATE_LIMIT", "10/minute"),
        cors_origins=origins,
    )


def reset_settings_cache() -> None:
    """Clear cached settings; useful in tests when env vars change."""

    get_settings.cache_clear()


__all__ = [
    "DEFAULT_SESSION_SECRET",
    "Settings",
    "get_settings",
    "reset_settings_cache",
    "resolve_service_url",
]
