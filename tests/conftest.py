"""Tests configurations and fixtures."""

from datetime import timedelta
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from json import dumps, loads
from threading import Lock, Thread
from time import sleep
from typing import TYPE_CHECKING

import httpx
import pytest

from pytest_marcus.runner import TestExecutor
from pytest_marcus.settings import RunnerSettings

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

#: A handler receives an outgoing request and returns a canned response.
type Handler = Callable[[httpx.Request], httpx.Response]


class InstrumentedTransport(httpx.BaseTransport):
    """Transport counting requests that are in flight at the same time."""

    def __init__(self, latency: float = 0.05) -> None:
        """Initialize the transport.

        Args:
            latency: Time spent on each request, in seconds.
        """
        self.latency = latency
        self.lock = Lock()
        self.in_flight = 0
        self.max_in_flight = 0
        self.paths: list[str] = []

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        """Simulate a slow endpoint answering with an empty object."""
        with self.lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            self.paths.append(request.url.path)

        sleep(self.latency)

        with self.lock:
            self.in_flight -= 1

        return httpx.Response(200, json={})


@pytest.fixture
def settings() -> RunnerSettings:
    """Provide deterministic runner settings independent of the host."""
    return RunnerSettings(
        retry_delay=timedelta(milliseconds=10),
        retry_max=3,
        timeout=5.0,
        workers=2,
        preview_limit=500,
    )


@pytest.fixture
def make_executor(settings: RunnerSettings,
                  mocker: 'MockerFixture') -> 'Iterator[Callable[..., TestExecutor]]':
    """Provide a factory of executors backed by a mocked transport.

    The returned factory accepts either a request handler (wrapped into
    `httpx.MockTransport`) or a ready transport, and optional settings.
    Executors never sleep between attempts: `executor.sleeper` is a mock
    recording the requested delays.
    """
    clients: list[httpx.Client] = []

    def factory(handler: 'Handler | httpx.BaseTransport',
                custom: RunnerSettings | None = None) -> TestExecutor:
        transport = handler
        if not isinstance(handler, httpx.BaseTransport):
            transport = httpx.MockTransport(handler)

        client = httpx.Client(transport=transport)
        clients.append(client)

        return TestExecutor(custom or settings, client=client, sleeper=mocker.Mock(return_value=None))

    yield factory

    for client in clients:
        client.close()


class _EchoHandler(BaseHTTPRequestHandler):
    """Small JSON API used by pytest integration tests.

    Routes:
        - `POST /users` creates user 7 and echoes the posted name;
        - `GET /users/7` returns user 7;
        - `GET /status/<code>` answers with the given status;
        - anything else is a 404.
    """

    def _reply(self, status: int, payload: dict) -> None:
        content = dumps(payload).encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(content)))
        self.end_headers()
        self.wfile.write(content)

    def do_GET(self) -> None:  # noqa: N802
        if self.path == '/users/7':
            self._reply(200, {'id': 7, 'name': 'alice'})
        elif self.path.startswith('/status/'):
            code = int(self.path.removeprefix('/status/'))
            self._reply(code, {'status': code})
        else:
            self._reply(404, {'error': 'not found'})

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get('Content-Length', 0))
        body = loads(self.rfile.read(length) or b'{}')
        if self.path == '/users':
            self._reply(201, {'id': 7, 'name': body.get('name')})
        else:
            self._reply(404, {'error': 'not found'})

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        return None


@pytest.fixture
def http_server() -> 'Iterator[str]':
    """Serve a local JSON API for the duration of a test.

    Yields:
        Root URL of the server, without trailing slash.
    """
    server = ThreadingHTTPServer(('127.0.0.1', 0), _EchoHandler)
    thread = Thread(target=server.serve_forever, daemon=True)
    thread.start()

    host, port = server.server_address[:2]
    yield f'http://{host}:{port}'

    server.shutdown()
    server.server_close()
    thread.join()


@pytest.fixture
def instrumented_transport() -> InstrumentedTransport:
    """Provide a slow transport recording request concurrency."""
    return InstrumentedTransport()
