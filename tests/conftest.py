"""Root pytest configuration and shared fixtures."""

from __future__ import annotations

import logging
import socket
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Iterable

import pytest

from devlaunch.config import LauncherSettings, load_settings

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="children are POSIX shell commands")


class _HealthHandler(BaseHTTPRequestHandler):
    def do_GET(self) -> None:  # noqa: N802
        status = self.server.endpoint.next_status()  # type: ignore[attr-defined]
        self.send_response(status)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        pass


class HealthEndpoint:
    """Local HTTP server answering GETs with queued status codes, then 200."""

    def __init__(self, statuses: Iterable[int] = ()) -> None:
        self.statuses = list(statuses)
        self.requests = 0
        self._lock = threading.Lock()
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), _HealthHandler)
        self.server.endpoint = self  # type: ignore[attr-defined]
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)

    def next_status(self) -> int:
        with self._lock:
            self.requests += 1
            return self.statuses.pop(0) if self.statuses else 200

    @property
    def port(self) -> int:
        return self.server.server_address[1]

    def url(self, path: str = "/api/health") -> str:
        return f"http://127.0.0.1:{self.port}{path}"

    def start(self) -> "HealthEndpoint":
        self.thread.start()
        return self

    def stop(self) -> None:
        self.server.shutdown()
        self.server.server_close()


@pytest.fixture
def health_endpoint():
    """Factory for started HealthEndpoint servers, shut down after the test."""
    endpoints: list[HealthEndpoint] = []

    def _make(statuses: Iterable[int] = ()) -> HealthEndpoint:
        endpoint = HealthEndpoint(statuses).start()
        endpoints.append(endpoint)
        return endpoint

    yield _make
    for endpoint in endpoints:
        endpoint.stop()


@pytest.fixture
def hung_url():
    """URL of a socket that accepts connections but never answers."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    sock.listen(16)
    yield f"http://127.0.0.1:{sock.getsockname()[1]}/api/health"
    sock.close()


@pytest.fixture
def closed_port() -> int:
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture(autouse=True)
def _isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test from an empty directory so no overrides file or .env leaks in."""
    work = tmp_path / "cwd"
    work.mkdir()
    monkeypatch.chdir(work)


@pytest.fixture
def restore_root_logging():
    """Restore the root logger's handlers and level after a test reconfigures logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch()


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A repository layout with server/ and web/, both already installed and generated."""
    root = tmp_path / "repo"
    _touch(root / "server" / "node_modules" / ".bin" / "tsx")
    _touch(root / "server" / "prisma" / "generated" / "index.js")
    _touch(root / "web" / "node_modules" / ".bin" / "tsx")
    return root


@pytest.fixture
def make_settings(project: Path):
    """Builds launcher settings for `project` with fast timings and shell children."""

    def _make(**overrides) -> LauncherSettings:
        values = dict(
            INSTALL_MARKER="node_modules/.bin/tsx",
            INSTALL_COMMAND=["exit", "0"],
            GENERATE_COMMAND=["exit", "0"],
            SERVER_COMMAND=["sleep", "30"],
            WEB_COMMAND=["sleep", "30"],
            HEALTH_TIMEOUT=0.5,
            HEALTH_INTERVAL=0.05,
            HEALTH_ATTEMPT_TIMEOUT=0.2,
            SHUTDOWN_GRACE_PERIOD=2.0,
        )
        values.update(overrides)
        return load_settings(project, **values)

    return _make
