from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock, local
from typing import Callable, Iterable
from urllib.parse import urlsplit

import requests

from bakedbaker.config import ProxyConfig
from bakedbaker.errors import UpstreamErrorStatus, UpstreamUnavailableError, VersionNotFoundError
from bakedbaker.types import Version

from .mapping import VersionMapping
from .payloads import ENDPOINTS
from .router import encode_payload, resolve_request

LOGGER = logging.getLogger(__name__)

# Recomputed by the HTTP client for the outbound request, or only meaningful per hop.
_SKIP_HEADERS = frozenset(
    {
        "content-length",
        "host",
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)


@dataclass(slots=True)
class RouteDecision:
    version: Version
    base: str
    url: str


@dataclass(slots=True)
class UpstreamResponse:
    status: int
    body: bytes
    content_type: str | None = None


def forward_headers(headers: Iterable[tuple[str, str]]) -> dict[str, str]:
    out: dict[str, str] = {}
    lowered: dict[str, str] = {}
    for key, value in headers:
        name = key.lower()
        if name in _SKIP_HEADERS:
            continue
        if name in lowered:
            first = lowered[name]
            out[first] = f"{out[first]}, {value}"
            continue
        lowered[name] = key
        out[key] = value
    return out


class ProxyLayer:
    """Resolves each RPC to a version and relays it to that version's instance."""

    def __init__(
        self,
        mapping: VersionMapping,
        cfg: ProxyConfig | None = None,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.mapping = mapping
        self.cfg = cfg or ProxyConfig()
        self._session_factory = session_factory
        self._local = local()
        self._sessions: list[requests.Session] = []
        self._sessions_lock = Lock()

    def route(self, version: Version, path: str) -> RouteDecision:
        base = self.mapping.base(version)
        if base is None:
            raise VersionNotFoundError(version)
        return RouteDecision(version=version, base=base, url=base.rstrip("/") + path)

    def handle(self, path: str, body: bytes, headers: Iterable[tuple[str, str]]) -> tuple[RouteDecision, UpstreamResponse]:
        """Resolve, route and forward one RPC. ``path`` may carry a query string."""
        payload_type = ENDPOINTS[urlsplit(path).path]
        resolved = resolve_request(body, payload_type)
        decision = self.route(resolved.version, path)
        # The payload is re-encoded since it may have come out of an envelope.
        response = self.send(decision, encode_payload(resolved.payload), headers)
        return decision, response

    def send(self, decision: RouteDecision, body: bytes, headers: Iterable[tuple[str, str]]) -> UpstreamResponse:
        try:
            resp = self._session().post(
                decision.url,
                data=body,
                headers=forward_headers(headers),
                timeout=(self.cfg.connect_timeout, self.cfg.read_timeout),
                allow_redirects=False,
            )
        except requests.RequestException as exc:
            raise UpstreamUnavailableError(
                f"could not send the request to agent baker version {decision.version}: {type(exc).__name__}"
            ) from exc

        if not 200 <= resp.status_code < 300:
            raise UpstreamErrorStatus(decision.version, resp.status_code)
        return UpstreamResponse(
            status=resp.status_code,
            body=resp.content,
            content_type=resp.headers.get("Content-Type"),
        )

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
