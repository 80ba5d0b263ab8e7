"""HTTP client for the communications and flow manager services.

Responses are read permissively: JSON when the upstream says so, raw text
otherwise, so HTML error pages from a proxy still reach the caller as error
``details`` instead of blowing up the request.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Union
from urllib.parse import quote

import requests

from .envelope import MISSING, BffError

logger = logging.getLogger(__name__)

QueryItems = list[tuple[str, str]]


# ---------------------------------------------------------------------------
# Response bodies
# ---------------------------------------------------------------------------


@dataclasses.dataclass(frozen=True)
class JsonBody:
    """Body of a response advertised as ``application/json``.

    ``value`` is ``None`` when the upstream lied about the content type.
    """

    value: Any

    def raw(self) -> Any:
        return self.value


@dataclasses.dataclass(frozen=True)
class TextBody:
    text: str

    def raw(self) -> Any:
        return self.text


Body = Union[JsonBody, TextBody]


def read_body(response: requests.Response) -> Body:
    """Read ``response`` as JSON or text depending on its content type."""

    content_type = response.headers.get("Content-Type") or ""
    if "application/json" in content_type.lower():
        try:
            return JsonBody(response.json())
        except ValueError:
            return JsonBody(None)
    return TextBody(response.text)


@dataclasses.dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    body: Body

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def payload(self) -> Any:
        if isinstance(self.body, TextBody) and not self.body.text:
            return None
        return self.body.raw()


def expect_ok(response: UpstreamResponse, code: str) -> UpstreamResponse:
    """Raise :class:`BffError` mirroring the upstream status unless it is 2xx."""

    if not response.ok:
        raise BffError(response.status_code, code, response.payload)
    return response


# ---------------------------------------------------------------------------
# Collections
# ---------------------------------------------------------------------------


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


@dataclasses.dataclass(frozen=True)
class Collection:
    """A list of upstream records plus the pagination the upstream reported."""

    items: list[Any]
    total: int | None = None
    limit: int | None = None
    offset: int | None = None

    def meta(self) -> dict[str, int]:
        values = {"total": self.total, "limit": self.limit, "offset": self.offset}
        return {key: value for key, value in values.items() if value is not None}


def decode_collection(body: Body, code: str) -> Collection:
    """Decode a bare JSON array or an ``{"items": [...]}`` page.

    Any other shape is rejected with a 502 carrying ``code`` so a contract
    change upstream never reads as an empty list.
    """

    value = body.value if isinstance(body, JsonBody) else MISSING
    if isinstance(value, list):
        return Collection(items=list(value))
    if isinstance(value, dict) and isinstance(value.get("items"), list):
        return Collection(
            items=list(value["items"]),
            total=_as_int(value.get("total")),
            limit=_as_int(value.get("limit")),
            offset=_as_int(value.get("offset")),
        )
    logger.warning("Unexpected collection shape for %s: %r", code, body)
    raise BffError(
        502,
        code,
        {"reason": "UNEXPECTED_COLLECTION_SHAPE", "body": body.raw()},
    )


# ---------------------------------------------------------------------------
# URLs and query strings
# ---------------------------------------------------------------------------


def build_url(base: str, *segments: object, trailing_slash: bool = False) -> str:
    """Append escaped path ``segments`` to ``base``."""

    path = "/".join(quote(str(segment), safe="") for segment in segments)
    url = f"{base.rstrip('/')}/{path}" if path else base.rstrip("/")
    return f"{url}/" if trailing_slash else url


def merge_query(
    incoming: Iterable[tuple[str, str]],
    forced: Mapping[str, object] | None = None,
    *,
    exclude: Iterable[str] = (),
) -> QueryItems:
    """Copy ``incoming`` query items and overlay server-derived ``forced`` ones.

    Every incoming value whose key appears in ``forced`` is dropped, so the
    server-derived value is the only one the upstream sees.
    """

    forced = forced or {}
    dropped = set(forced) | set(exclude)
    merged: QueryItems = [(key, value) for key, value in incoming if key not in dropped]
    merged.extend((key, str(value)) for key, value in forced.items() if value is not None)
    return merged


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class UpstreamClient:
    """Thin wrapper around :class:`requests.Session` with envelope-aware errors.

    Args:
        session: Optional session, injectable for tests.
        timeout: Seconds to wait for the upstream; ``None`` waits indefinitely.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    def request(
        self,
        method: str,
        url: str,
        *,
        error_code: str,
        params: QueryItems | Mapping[str, object] | None = None,
        json: Any = MISSING,
    ) -> UpstreamResponse:
        kwargs: dict[str, Any] = {
            "params": params,
            "headers": {"Accept": "application/json"},
            "timeout": self._timeout,
        }
        if json is not MISSING:
            kwargs["json"] = json
        try:
            response = self._session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            logger.warning("Upstream %s %s unreachable: %s", method, url, exc)
            raise BffError(502, error_code, str(exc)) from exc

        result = UpstreamResponse(status_code=response.status_code, body=read_body(response))
        if not result.ok:
            logger.warning(
                "Upstream %s %s returned %s", method, url, result.status_code
            )
        return result

    def get(self, url: str, *, error_code: str, params: Any = None) -> UpstreamResponse:
        return self.request("GET", url, error_code=error_code, params=params)

    def post(self, url: str, *, error_code: str, json: Any = MISSING) -> UpstreamResponse:
        return self.request("POST", url, error_code=error_code, json=json)

    def put(self, url: str, *, error_code: str, json: Any = MISSING) -> UpstreamResponse:
        return self.request("PUT", url, error_code=error_code, json=json)

    def delete(self, url: str, *, error_code: str, params: Any = None) -> UpstreamResponse:
        return self.request("DELETE", url, error_code=error_code, params=params)

    def fetch_collection(
        self, url: str, *, error_code: str, params: Any = None
    ) -> Collection:
        """GET ``url`` and decode the answer as a :class:`Collection`."""

        response = expect_ok(self.get(url, error_code=error_code, params=params), error_code)
        return decode_collection(response.body, error_code)

    def close(self) -> None:
        self._session.close()


__all__ = [
    "Body",
    "Collection",
    "JsonBody",
    "TextBody",
    "UpstreamClient",
    "UpstreamResponse",
    "build_url",
    "decode_collection",
    "expect_ok",
    "merge_query",
    "read_body",
]
