"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Dict, Generator, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gracefulhttp import HTTPServer, ServerConfig, ShutdownOrchestrator, create_app
from gracefulhttp.core import DrainResult
from gracefulhttp.http import HTTPRequest, HTTPResponse, ResponseBuilder


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /hello?lang=en HTTP/1.1\r\n"
        b"Host: localhost:9000\r\n"
        b"User-Agent: pytest\r\n"
        b"X-Request-Id: abc-123\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b'{"name": "John"}'
    return (
        b"POST /echo HTTP/1.1\r\n"
        b"Host: localhost:9000\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration on an OS-assigned loopback port."""
    return ServerConfig(
        listen_addr="127.0.0.1:0",
        read_timeout=2.0,
        write_timeout=2.0,
        idle_timeout=5.0,
        shutdown_timeout=5.0,
        log_level="WARNING",
    )


def make_request(method: str, path: str, headers: Optional[Dict[str, str]] = None) -> HTTPRequest:
    """Build an HTTPRequest without going through the parser."""
    lowered = {name.lower(): value for name, value in (headers or {}).items()}
    return HTTPRequest(
        method=method,
        path=path,
        headers=lowered,
        client_address=("10.0.0.7", 53122),
    )


# =============================================================================
# RUNNING SERVER HELPER
# =============================================================================

def http_get(
    address: Tuple[str, int],
    path: str,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 5.0,
) -> Tuple[int, Dict[str, str], bytes]:
    """
    Minimal blocking client: one GET with Connection: close.

    Returns:
        (status, headers with lowercase names, body)
    """
    lines = [f"GET {path} HTTP/1.1", f"Host: {address[0]}", "Connection: close"]
    lines.extend(f"{name}: {value}" for name, value in (headers or {}).items())
    raw = ("\r\n".join(lines) + "\r\n\r\n").encode()

    with socket.create_connection(address, timeout=timeout) as sock:
        sock.sendall(raw)
        chunks = []
        while True:
            chunk = sock.recv(4096)
            if not chunk:
                break
            chunks.append(chunk)
    return parse_response(b"".join(chunks))


def parse_response(data: bytes) -> Tuple[int, Dict[str, str], bytes]:
    head, _, body = data.partition(b"\r\n\r\n")
    lines = head.decode("utf-8").split("\r\n")
    status = int(lines[0].split(" ")[1])
    response_headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        response_headers[name.strip().lower()] = value.strip()
    return status, response_headers, body


class RunningServer:
    """Runs an orchestrated server on a background thread, no signals."""

    def __init__(self, server: HTTPServer, shutdown_timeout: float = 5.0):
        self.server = server
        self.orchestrator = ShutdownOrchestrator(
            server,
            server.liveness,
            shutdown_timeout=shutdown_timeout,
            signals=(),
        )
        self.result: Optional[DrainResult] = None
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> Tuple[str, int]:
        return self.server.address

    def start(self) -> "RunningServer":
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        deadline = time.monotonic() + 5.0
        while not self.server.liveness.is_ready():
            if self.error is not None:
                raise self.error
            if time.monotonic() > deadline:
                raise RuntimeError("Server failed to start")
            time.sleep(0.01)
        return self

    def _run(self) -> None:
        try:
            self.result = self.orchestrator.run()
        except BaseException as e:
            self.error = e

    def get(self, path: str, headers: Optional[Dict[str, str]] = None):
        return http_get(self.address, path, headers)

    def shutdown(self) -> None:
        self.orchestrator.request_shutdown("test")

    def join(self, timeout: float = 10.0) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def stop(self) -> None:
        self.shutdown()
        self.join()


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[RunningServer, None, None]:
    """create_app() with two extra test routes, serving on loopback."""
    server = create_app(config)

    @server.get("/test")
    def test_route(request: HTTPRequest) -> HTTPResponse:
        return ResponseBuilder().json({"status": "ok"}).build()

    @server.get("/boom")
    def boom(request: HTTPRequest) -> HTTPResponse:
        raise RuntimeError("boom")

    running = RunningServer(server, shutdown_timeout=config.shutdown_timeout).start()

    yield running

    running.stop()
