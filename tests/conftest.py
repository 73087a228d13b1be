"""Shared fixtures: asset bundles on disk, fake processes and fake agent baker backends."""

from __future__ import annotations

import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable, Iterator, Sequence

import pytest

from bakedbaker.proxy import ProxyLayer, VersionMapping
from bakedbaker.server import BakedBakerServer


# =============================================================================
# Asset bundles
# =============================================================================


@pytest.fixture
def make_bundle(tmp_path: Path) -> Callable[..., Path]:
    """Build a bundle directory: ``make_bundle("1.0.0", "1.1.0")``.

    Each version gets an ``agentbaker`` file whose content names the version.
    """

    def _make(*versions: str, binary_name: str = "agentbaker") -> Path:
        root = tmp_path / "binaries"
        root.mkdir(exist_ok=True)
        for version in versions:
            vdir = root / version
            vdir.mkdir()
            (vdir / binary_name).write_bytes(f"#!/bin/sh\n# agentbaker {version}\n".encode())
        return root

    return _make


# =============================================================================
# Processes
# =============================================================================


class FakeProcess:
    _next_pid = 4000

    def __init__(self, argv: Sequence[str]) -> None:
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.argv = list(argv)
        self.returncode: int | None = None
        self.terminated = False

    def poll(self) -> int | None:
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15

    def kill(self) -> None:
        self.returncode = -9

    def wait(self, timeout: float | None = None) -> int | None:
        return self.returncode


class RecordingSpawner:
    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.processes: list[FakeProcess] = []
        self._lock = threading.Lock()

    def __call__(self, argv: Sequence[str]) -> FakeProcess:
        proc = FakeProcess(argv)
        with self._lock:
            self.calls.append(list(argv))
            self.processes.append(proc)
        return proc


@pytest.fixture
def spawner() -> RecordingSpawner:
    return RecordingSpawner()


# =============================================================================
# HTTP backends and the router
# =============================================================================


class FakeAgentBaker:
    """An in-process stand-in for one agent baker release."""

    def __init__(self, name: str, status: int = 200, body: bytes | None = None) -> None:
        self.name = name
        self.status = status
        self.body = body if body is not None else json.dumps({"served_by": name}).encode()
        self.requests: list[tuple[str, dict[str, str], bytes]] = []
        owner = self

        class Handler(BaseHTTPRequestHandler):
            def do_POST(self) -> None:  # noqa: N802
                length = int(self.headers.get("Content-Length", "0"))
                data = self.rfile.read(length) if length else b""
                owner.requests.append((self.path, dict(self.headers.items()), data))
                self.send_response(owner.status)
                self.send_header("Content-Type", "application/json")
                self.send_header("Content-Length", str(len(owner.body)))
                self.end_headers()
                self.wfile.write(owner.body)

            def log_message(self, format: str, *args) -> None:  # noqa: A002
                pass

        self._server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    @property
    def base(self) -> str:
        return f"http://127.0.0.1:{self._server.server_address[1]}"

    def close(self) -> None:
        self._server.shutdown()
        self._server.server_close()


@pytest.fixture
def fake_backend() -> Iterator[Callable[..., FakeAgentBaker]]:
    started: list[FakeAgentBaker] = []

    def _start(name: str, status: int = 200, body: bytes | None = None) -> FakeAgentBaker:
        backend = FakeAgentBaker(name, status=status, body=body)
        started.append(backend)
        return backend

    yield _start
    for backend in started:
        backend.close()


@pytest.fixture
def run_router() -> Iterator[Callable[[VersionMapping], str]]:
    """Serve a router for ``mapping`` on an ephemeral port and return its base URL."""
    servers: list[tuple[BakedBakerServer, ProxyLayer]] = []

    def _run(mapping: VersionMapping) -> str:
        proxy = ProxyLayer(mapping)
        server = BakedBakerServer("127.0.0.1", 0, proxy, timeout=5.0)
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append((server, proxy))
        return f"http://127.0.0.1:{server.server_address[1]}"

    yield _run
    for server, proxy in servers:
        server.shutdown()
        server.server_close()
        proxy.close()


@pytest.fixture
def closed_port() -> int:
    """A local port with nothing listening on it."""
    import socket

    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]
