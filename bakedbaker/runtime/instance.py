from __future__ import annotations

import logging
import os
import socket
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Sequence

from bakedbaker.types import Version

LOGGER = logging.getLogger(__name__)

Spawner = Callable[[Sequence[str]], Any]


class PortAllocator:
    """Hands out sequential local ports starting at ``base``. Ports are never reused."""

    def __init__(self, base: int = 8080) -> None:
        if not 0 < base < 65536:
            raise ValueError(f"base port out of range: {base}")
        self._next = base
        self._lock = Lock()

    def allocate(self) -> int:
        with self._lock:
            port = self._next
            if port >= 65536:
                raise RuntimeError("no local ports left to allocate")
            self._next += 1
            return port


@dataclass(slots=True)
class InstanceRecord:
    version: Version
    port: int
    base: str
    process: Any

    @property
    def pid(self) -> int | None:
        return getattr(self.process, "pid", None)


def extract_payload(directory: Path, version: Version, payload: bytes) -> Path:
    """Write the payload to ``directory/<version>`` and mark it executable."""
    path = directory / str(version)
    path.write_bytes(payload)
    os.chmod(path, 0o755)
    return path


def default_spawner(argv: Sequence[str]) -> subprocess.Popen:
    # Instances inherit stdout/stderr so their logs land next to ours.
    return subprocess.Popen(list(argv), stdin=subprocess.DEVNULL, start_new_session=True)


def start_instance(
    binary: Path,
    port: int,
    port_flag: str = "-port",
    spawner: Spawner = default_spawner,
) -> Any:
    return spawner([str(binary), port_flag, str(port)])


def wait_for_port(host: str, port: int, process: Any, timeout: float) -> None:
    """Block until something accepts TCP connections on ``host:port``.

    Raises RuntimeError if the process exits first or the timeout expires.
    """
    deadline = time.monotonic() + timeout
    while True:
        poll = getattr(process, "poll", None)
        if poll is not None:
            code = poll()
            if code is not None:
                raise RuntimeError(f"process exited with code {code} before accepting connections")
        try:
            with socket.create_connection((host, port), timeout=0.5):
                return
        except OSError:
            pass
        if time.monotonic() >= deadline:
            raise RuntimeError(f"port {port} not accepting connections after {timeout:.1f}s")
        time.sleep(0.05)


def stop_instance(record: InstanceRecord, timeout: float = 5.0) -> None:
    proc = record.process
    if not hasattr(proc, "terminate") or proc.poll() is not None:
        return
    proc.terminate()
    try:
        proc.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        LOGGER.warning("Instance %s (pid %s) ignored SIGTERM, killing", record.version, record.pid)
        proc.kill()
        proc.wait()
