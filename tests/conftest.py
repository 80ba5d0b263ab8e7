import json
import os
import pathlib
import sys
import tempfile
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient
from requests.structures import CaseInsensitiveDict

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
# Importing app.main builds a module-level app, which initialises file logging.
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="bff-test-logs-"))

from app.config import Settings, reset_settings_cache
from app.core.limiter import limiter
from app.main import create_app
from app.models import User
from app.models.session import create_schema, get_engine, get_sessionmaker, session_scope
from app.security import create_session_token, hash_password

FLOW_BASE = "http://flow.test/api"
COMMS_BASE = "http://comms.test/api"
USER_EMAIL = "owner@acme.com"
USER_PASSWORD = "Secret123!"
USER_PHONE = "+55 11 99999-0000"
COMPANY_ID = 7


def flow(resource: str, *segments: object) -> str:
    """Upstream flow manager URL as the BFF builds it."""

    url = f"{FLOW_BASE}/{resource}/"
    if segments:
        url = url + "/".join(str(s) for s in segments)
    return url


def comms(*segments: str) -> str:
    return "/".join([COMMS_BASE, *segments])


class FakeResponse:
    """Just enough of :class:`requests.Response` for the upstream client."""

    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        text: str | None = None,
        content_type: str | None = "application/json",
    ) -> None:
        self.status_code = status_code
        self.headers = CaseInsensitiveDict({"Content-Type": content_type} if content_type else {})
        self._payload = payload
        self._text = text

    def json(self) -> Any:
        if self._text is not None:
            return json.loads(self._text)
        return self._payload

    @property
    def text(self) -> str:
        if self._text is not None:
            return self._text
        return "" if self._payload is None else json.dumps(self._payload)


@dataclass
class RecordedRequest:
    method: str
    url: str
    params: Any = None
    json: Any = None
    has_json: bool = False

    @property
    def query(self) -> dict[str, str]:
        return dict(self.params or [])

    @property
    def query_items(self) -> list[tuple[str, str]]:
        if self.params is None:
            return []
        if isinstance(self.params, dict):
            return list(self.params.items())
        return list(self.params)


Responder = FakeResponse | Callable[[RecordedRequest], FakeResponse]


@dataclass
class FakeUpstreamSession:
    """Route-table stand-in for :class:`requests.Session`.

    Unregistered routes fail loudly so tests notice unexpected upstream calls.
    """

    routes: dict[tuple[str, str], Responder] = field(default_factory=dict)
    requests: list[RecordedRequest] = field(default_factory=list)
    closed: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def add(self, method: str, url: str, response: Responder) -> None:
        self.routes[(method.upper(), url)] = response

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        recorded = RecordedRequest(
            method=method.upper(),
            url=url,
            params=kwargs.get("params"),
            json=kwargs.get("json"),
            has_json="json" in kwargs,
        )
        with self._lock:
            self.requests.append(recorded)
        responder = self.routes.get((recorded.method, url))
        if responder is None:
            raise AssertionError(f"unexpected upstream call {recorded.method} {url}")
        if callable(responder):
            return responder(recorded)
        return responder

    def calls(self, method: str, url: str | None = None) -> list[RecordedRequest]:
        return [
            r
            for r in self.requests
            if r.method == method.upper() and (url is None or r.url == url)
        ]

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    for name in ("APP_ENV", "SESSION_SECRET", "LOGIN_RATE_LIMIT", "ADMIN_UI_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    reset_settings_cache()
    limiter.reset()
    yield
    reset_settings_cache()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        flow_manager_service_url=FLOW_BASE,
        communications_web_url=COMMS_BASE,
        session_secret="test-secret",
        cache_max_age_seconds=30,
    )


@pytest.fixture
def engine(tmp_path):
    engine = get_engine(
        f"sqlite:///{tmp_path / 'bff.db'}", connect_args={"check_same_thread": False}
    )
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return get_sessionmaker(engine)


@pytest.fixture
def user(session_factory) -> User:
    with session_scope(session_factory) as session:
        record = User(
            email=USER_EMAIL,
            name="Acme Owner",
            password_hash=hash_password(USER_PASSWORD),
            phone_number=USER_PHONE,
        )
        session.add(record)
    return record


@pytest.fixture
def upstream() -> FakeUpstreamSession:
    return FakeUpstreamSession()


@pytest.fixture
def company(upstream: FakeUpstreamSession) -> int:
    """Register the company lookup for the seeded user's phone number."""

    def _lookup(request: RecordedRequest) -> FakeResponse:
        assert request.query == {"unique_identifier": USER_PHONE}
        return FakeResponse(200, [{"id": COMPANY_ID, "name": "Acme"}])

    upstream.add("GET", flow("companies"), _lookup)
    return COMPANY_ID


@pytest.fixture
def app(settings, engine, upstream):
    return create_app(settings, engine=engine, http_session=upstream)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(user, settings) -> dict[str, str]:
    token, _ = create_session_token(user.email, settings=settings)
    return {"Authorization": f"Bearer {token}"}


def register_nodes(upstream: FakeUpstreamSession, *node_ids: int) -> None:
    """Serve ``node_ids`` as the company's nodes."""

    def _nodes(request: RecordedRequest) -> FakeResponse:
        assert request.query.get("company_id") == str(COMPANY_ID)
        return FakeResponse(200, [{"id": nid, "company_id": COMPANY_ID} for nid in node_ids])

    upstream.add("GET", flow("nodes"), _nodes)
