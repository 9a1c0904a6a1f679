"""
Pytest configuration and shared fixtures.
"""

import io
import socket
import threading
from typing import Dict, Optional

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from domainmatch.matcher import MatchTest, new_matcher


class StubPage:
    """In-memory page that records whether it was read and closed."""

    def __init__(self, body: bytes = b"", content_type: Optional[str] = "text/html; charset=utf-8", status: int = 200):
        self.status = status
        self.headers: Dict[str, str] = CaseInsensitiveDict()
        if content_type is not None:
            self.headers["Content-Type"] = content_type
        self.body = body
        self.reads = 0
        self.closed = False

    def read(self) -> bytes:
        self.reads += 1
        return self.body

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class StubFetcher:
    """Returns a fixed page (or raises a fixed error) and records every call."""

    def __init__(self, page: Optional[StubPage] = None, error: Optional[Exception] = None):
        self.page = page
        self.error = error
        self.calls = []

    def fetch(self, domain, timeout, cancel=None):
        self.calls.append({"domain": domain, "timeout": timeout, "cancel": cancel})
        if self.error is not None:
            raise self.error
        return self.page


class StubSession:
    """Stands in for requests.Session; hands back a canned Response."""

    def __init__(self, response: Optional[requests.Response] = None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def sample_home_page_html() -> str:
    """Home page of a small olive oil importer."""
    return """
    <html>
    <head>
        <title>Welcome</title>
        <style>.genco { color: green; }</style>
    </head>
    <body>
        <h1>GENCO Olive OIL</h1>
        <p>Importers since 1920.</p>
        <script>var brand = "acme widgets";</script>
    </body>
    </html>
    """


@pytest.fixture
def make_page():
    """Factory for StubPage."""
    return StubPage


@pytest.fixture
def make_fetcher():
    """Factory for StubFetcher."""
    return StubFetcher


@pytest.fixture
def make_session():
    """Factory for StubSession."""
    return StubSession


@pytest.fixture
def make_response():
    """Build a real requests.Response backed by an in-memory body."""
    def _make(body: bytes = b"", content_type: Optional[str] = "text/html", status: int = 200, url: str = "http://example.com/"):
        resp = requests.Response()
        resp.status_code = status
        resp.url = url
        resp.headers = CaseInsensitiveDict()
        if content_type is not None:
            resp.headers["Content-Type"] = content_type
        resp.raw = io.BytesIO(body)
        return resp
    return _make


@pytest.fixture
def offline_matcher():
    """Default weights without the home-page test, so nothing touches the network."""
    matcher = new_matcher()
    del matcher.scores[MatchTest.WEB_PAGE_REF]
    return matcher


class TricklingServer:
    """
    Local HTTP server that sends ``head`` and then one byte of ``drip``
    every ``interval`` seconds, never finishing on time.

    Serves a single connection on a background thread; ``domain`` is the
    host:port to hand to a fetcher.
    """

    def __init__(self, head: bytes, drip: bytes = b"x" * 1000, interval: float = 0.2):
        self.head = head
        self.drip = drip
        self.interval = interval
        self.stopped = threading.Event()
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(1)
        self.domain = "127.0.0.1:%d" % self.listener.getsockname()[1]
        self.thread = threading.Thread(target=self._serve, daemon=True)
        self.thread.start()

    def _serve(self):
        try:
            conn, _ = self.listener.accept()
        except OSError:
            return
        with conn:
            try:
                conn.recv(65536)
                conn.sendall(self.head)
                for i in range(len(self.drip)):
                    if self.stopped.wait(self.interval):
                        return
                    conn.sendall(self.drip[i:i + 1])
            except OSError:
                # Client went away
                return

    def close(self):
        self.stopped.set()
        try:
            self.listener.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.listener.close()
        self.thread.join(timeout=2)


@pytest.fixture
def trickling_server():
    """Factory for TricklingServer; every server is shut down after the test."""
    servers = []

    def _make(head: bytes, **kwargs) -> TricklingServer:
        server = TricklingServer(head, **kwargs)
        servers.append(server)
        return server

    yield _make
    for server in servers:
        server.close()


@pytest.fixture
def direct_session():
    """A requests.Session that ignores proxy settings from the environment."""
    session = requests.Session()
    session.trust_env = False
    yield session
    session.close()
