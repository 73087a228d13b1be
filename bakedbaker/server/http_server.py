from __future__ import annotations

import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

from bakedbaker.errors import BakedBakerError, MalformedRequestError
from bakedbaker.proxy.payloads import ENDPOINTS
from bakedbaker.proxy.service import ProxyLayer

LOGGER = logging.getLogger(__name__)

HEALTHZ_PATH = "/healthz"


class BakedBakerHandler(BaseHTTPRequestHandler):
    proxy: ProxyLayer

    def _endpoint(self) -> str:
        return urlsplit(self.path).path

    def _read_body(self) -> bytes:
        if "chunked" in self.headers.get("Transfer-Encoding", "").lower():
            return self._read_chunked()
        raw_len = self.headers.get("Content-Length", "0")
        try:
            content_len = int(raw_len)
        except ValueError:
            raise MalformedRequestError(f"invalid Content-Length: {raw_len!r}") from None
        if content_len < 0:
            raise MalformedRequestError(f"invalid Content-Length: {raw_len!r}")
        return self.rfile.read(content_len) if content_len > 0 else b""

    def _read_chunked(self) -> bytes:
        chunks: list[bytes] = []
        while True:
            line = self.rfile.readline(65537).split(b";", 1)[0].strip()
            try:
                size = int(line, 16)
            except ValueError:
                raise MalformedRequestError("invalid chunked encoding") from None
            if size == 0:
                # Discard trailers up to the blank line.
                while self.rfile.readline(65537) not in (b"\r\n", b"\n", b""):
                    pass
                return b"".join(chunks)
            chunks.append(self.rfile.read(size))
            self.rfile.readline(65537)

    def _write_body(self, code: int, body: bytes, content_type: str | None) -> None:
        self.send_response(code)
        if content_type:
            self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if body:
            self.wfile.write(body)

    def _write_json(self, code: int, payload: dict) -> None:
        self._write_body(code, json.dumps(payload).encode("utf-8"), "application/json")

    def _write_error(self, exc: BakedBakerError) -> None:
        self._write_json(exc.status_code, {"error": {"type": type(exc).__name__, "message": str(exc)}})

    def _log_route(self, version: str, base: str, status: int) -> None:
        LOGGER.info("[route] path=%s version=%s base=%s status=%d", self._endpoint(), version, base, status)

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        LOGGER.debug("%s - %s", self.address_string(), format % args)

    def do_GET(self) -> None:  # noqa: N802
        endpoint = self._endpoint()
        if endpoint == HEALTHZ_PATH:
            self._write_body(200, b"", "text/plain; charset=utf-8")
            return
        if endpoint in ENDPOINTS:
            self._write_method_not_allowed("POST")
            return
        self._write_json(404, {"error": {"type": "NotFound", "message": f"unknown path: {endpoint}"}})

    def do_POST(self) -> None:  # noqa: N802
        endpoint = self._endpoint()
        if endpoint in ENDPOINTS:
            self._handle_rpc()
            return
        # Unread bytes left on the socket can turn the close into a reset.
        try:
            self._read_body()
        except MalformedRequestError:
            pass
        if endpoint == HEALTHZ_PATH:
            self._write_method_not_allowed("GET")
            return
        self._write_json(404, {"error": {"type": "NotFound", "message": f"unknown path: {endpoint}"}})

    def _write_method_not_allowed(self, allowed: str) -> None:
        body = json.dumps(
            {"error": {"type": "MethodNotAllowed", "message": f"{self.command} not allowed, use {allowed}"}}
        ).encode("utf-8")
        self.send_response(405)
        self.send_header("Allow", allowed)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _handle_rpc(self) -> None:
        try:
            body = self._read_body()
            decision, response = self.proxy.handle(self.path, body, self.headers.items())
        except BakedBakerError as exc:
            LOGGER.warning("[route] path=%s failed: %s", self._endpoint(), exc)
            self._write_error(exc)
            return
        except Exception:
            LOGGER.exception("[route] path=%s unexpected failure", self._endpoint())
            self._write_json(500, {"error": {"type": "InternalError", "message": "internal error"}})
            return

        self._log_route(decision.version, decision.base, response.status)
        self._write_body(response.status, response.body, response.content_type)


class BakedBakerServer(ThreadingHTTPServer):
    def __init__(self, host: str, port: int, proxy: ProxyLayer, timeout: float = 30.0) -> None:
        handler = type(
            "BoundBakedBakerHandler",
            (BakedBakerHandler,),
            {"proxy": proxy, "timeout": timeout},
        )
        super().__init__((host, port), handler)


def run_proxy_server(proxy: ProxyLayer, host: str = "localhost", port: int = 8080, timeout: float = 30.0) -> None:
    server = BakedBakerServer(host=host, port=port, proxy=proxy, timeout=timeout)
    try:
        server.serve_forever()
    finally:
        server.server_close()
