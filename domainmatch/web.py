"""
Home-page evidence for the WebPageRef test.

Fetches ``http://<domain>/`` once, checks that the page is HTML, turns it
into plain text and looks for the root phrase in it. The fetch and the
HTML-to-text step are collaborators behind small protocols so tests (and
callers with their own HTTP stack) can substitute them.
"""

import re
import socket
import threading
import time
from typing import Mapping, Optional, Protocol, Union

import requests
from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup

from .errors import FetchError, HtmlParseError, MatchCancelled
from .logger import get_logger

DEFAULT_TIMEOUT = 5.0
CHUNK_SIZE = 64 * 1024
WATCHDOG_INTERVAL = 0.05

# RFC 7230 token characters
_TOKEN = r"[!#$%&'*+.^_`|~0-9A-Za-z-]+"
_MEDIA_TYPE_RE = re.compile(rf"^{_TOKEN}/{_TOKEN}$")

INVISIBLE_TAGS = ["script", "style", "noscript", "template"]


class Page(Protocol):
    """A fetched response. Used as a context manager so the body is always released."""

    status: int
    headers: Mapping[str, str]

    def read(self) -> bytes:
        ...

    def close(self) -> None:
        ...

    def __enter__(self) -> "Page":
        ...

    def __exit__(self, *exc) -> None:
        ...


class Fetcher(Protocol):
    def fetch(self, domain: str, timeout: float, cancel: Optional[threading.Event] = None) -> Page:
        ...


class TextExtractor(Protocol):
    def extract(self, html: Union[bytes, str]) -> str:
        ...


def home_page_url(domain: str) -> str:
    return f"http://{domain}/"


def _check_cancel(cancel: Optional[threading.Event], url: str) -> None:
    if cancel is not None and cancel.is_set():
        raise MatchCancelled(f"Fetch of {url} cancelled")


def _socket_of(resp: requests.Response) -> Optional[socket.socket]:
    """The socket under a streamed response, when urllib3 still holds its connection."""
    conn = getattr(resp.raw, "connection", None)
    return getattr(conn, "sock", None)


class Watchdog:
    """
    Aborts an in-flight response when the deadline passes or ``cancel`` is set.

    requests applies its timeout to each socket operation, so a server
    trickling bytes can hold a read open indefinitely. The watchdog shuts
    the socket down from its own thread, which wakes the blocked reader.
    ``fired`` records why: "timeout" or "cancel".
    """

    def __init__(self, deadline: float, cancel: Optional[threading.Event] = None):
        self.deadline = deadline
        self.cancel = cancel
        self.fired: Optional[str] = None
        self._resp: Optional[requests.Response] = None
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name="domainmatch-watchdog", daemon=True)
        self._thread.start()

    def check(self) -> Optional[str]:
        """Fire if the deadline or cancel event calls for it; return why, if fired."""
        if self.fired is None:
            if self.cancel is not None and self.cancel.is_set():
                self._fire("cancel")
            elif time.monotonic() >= self.deadline:
                self._fire("timeout")
        return self.fired

    def attach(self, resp: requests.Response) -> None:
        """Watch ``resp``; it is aborted at once if the watchdog already fired."""
        with self._lock:
            self._resp = resp
            fired = self.fired
        if fired is not None:
            self._abort(resp)

    def stop(self) -> None:
        self._done.set()

    def _run(self) -> None:
        while not self._done.is_set():
            if self.check() is not None:
                return
            self._done.wait(min(WATCHDOG_INTERVAL, max(self.deadline - time.monotonic(), 0)))

    def _fire(self, reason: str) -> None:
        with self._lock:
            if self.fired is not None:
                return
            self.fired = reason
            resp = self._resp
        if resp is not None:
            self._abort(resp)

    @staticmethod
    def _abort(resp: requests.Response) -> None:
        sock = _socket_of(resp)
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Already closed by the peer or by the reader.
                pass
        resp.close()


def _raise_if_fired(watchdog: Watchdog, url: str, timeout: float, cause: Optional[BaseException] = None) -> None:
    reason = watchdog.check()
    if reason == "cancel":
        raise MatchCancelled(f"Fetch of {url} cancelled") from cause
    if reason == "timeout":
        raise FetchError(f"Request to {url} timed out after {timeout}s") from cause


class RequestsPage:
    """Wraps a streamed ``requests.Response`` guarded by a Watchdog."""

    def __init__(self, resp: requests.Response, watchdog: Watchdog, timeout: float = DEFAULT_TIMEOUT):
        self._resp = resp
        self._watchdog = watchdog
        self._timeout = timeout
        self.status = resp.status_code
        self.headers = resp.headers
        self.url = resp.url
        watchdog.attach(resp)

    def read(self) -> bytes:
        _raise_if_fired(self._watchdog, self.url, self._timeout)
        chunks = []
        try:
            for chunk in self._resp.iter_content(chunk_size=CHUNK_SIZE):
                _raise_if_fired(self._watchdog, self.url, self._timeout)
                chunks.append(chunk)
        except requests.exceptions.RequestException as e:
            _raise_if_fired(self._watchdog, self.url, self._timeout, e)
            raise FetchError(f"Error reading {self.url}: {e}") from e
        except (OSError, ValueError) as e:
            # Reading a body the watchdog already closed.
            _raise_if_fired(self._watchdog, self.url, self._timeout, e)
            raise
        # A shut-down socket can look like a clean end of body.
        _raise_if_fired(self._watchdog, self.url, self._timeout)
        return b"".join(chunks)

    def close(self) -> None:
        self._watchdog.stop()
        self._resp.close()

    def __enter__(self) -> "RequestsPage":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class RequestsFetcher:
    """Unauthenticated GET of the bare domain root over plain HTTP.

    The whole fetch, headers and body, is bounded by ``timeout`` and can
    be abandoned through ``cancel``. The request runs on a worker thread
    so that a slow server cannot hold the caller past the deadline; a
    response that arrives after the caller gave up is closed.
    """

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session

    def fetch(self, domain: str, timeout: float = DEFAULT_TIMEOUT, cancel: Optional[threading.Event] = None) -> RequestsPage:
        url = home_page_url(domain)
        _check_cancel(cancel, url)
        watchdog = Watchdog(time.monotonic() + timeout, cancel)
        get = self.session.get if self.session is not None else requests.get

        outcome = {}
        lock = threading.Lock()

        def send():
            try:
                resp = get(url, timeout=timeout, stream=True)
            except Exception as e:
                # Handed to the caller's thread below.
                outcome["error"] = e
                return
            with lock:
                abandoned = outcome.get("abandoned", False)
                outcome["resp"] = resp
            if abandoned:
                resp.close()

        worker = threading.Thread(target=send, name="domainmatch-fetch", daemon=True)
        worker.start()
        while worker.is_alive():
            worker.join(WATCHDOG_INTERVAL)
            if worker.is_alive() and watchdog.check() is not None:
                with lock:
                    outcome["abandoned"] = True
                    late = outcome.get("resp")
                if late is not None:
                    late.close()
                watchdog.stop()
                _raise_if_fired(watchdog, url, timeout)

        error = outcome.get("error")
        if error is not None:
            watchdog.stop()
            if isinstance(error, requests.exceptions.Timeout):
                raise FetchError(f"Request to {url} timed out after {timeout}s") from error
            if not isinstance(error, requests.exceptions.RequestException):
                raise error
            raise FetchError(f"Request to {url} failed: {error}") from error
        return RequestsPage(outcome["resp"], watchdog, timeout)


class SoupExtractor:
    """Visible text of an HTML document via BeautifulSoup."""

    def __init__(self, parser: str = "html.parser"):
        self.parser = parser

    def extract(self, html: Union[bytes, str]) -> str:
        try:
            soup = BeautifulSoup(html, self.parser)
        except ParserRejectedMarkup as e:
            raise HtmlParseError(f"Unparseable HTML: {e}") from e
        for tag in soup.find_all(INVISIBLE_TAGS):
            tag.extract()
        return soup.get_text()


def media_type(content_type: Optional[str]) -> str:
    """Return the lowercased ``type/subtype`` of a Content-Type header.

    Raises FetchError when the header is missing or malformed.
    """
    value = (content_type or "").split(";", 1)[0].strip()
    if not _MEDIA_TYPE_RE.match(value):
        raise FetchError(f"Unparseable Content-Type: {content_type!r}")
    return value.lower()


def page_mentions(
    domain: str,
    pattern: "re.Pattern[str]",
    fetcher: Fetcher,
    extractor: TextExtractor,
    timeout: float = DEFAULT_TIMEOUT,
    cancel: Optional[threading.Event] = None,
) -> bool:
    """Report whether ``pattern`` matches the text of the domain's home page.

    A page that is not text/html is a plain miss. Transport failures,
    timeouts, bad Content-Type headers and unparseable HTML raise.
    """
    url = home_page_url(domain)
    logger = get_logger()
    logger.record_fetch_attempt()
    try:
        with fetcher.fetch(domain, timeout, cancel) as page:
            ctype = media_type(page.headers.get("Content-Type"))
            if ctype != "text/html":
                logger.debug("Home page is not HTML", url=url, content_type=ctype)
                logger.record_fetch_success()
                return False
            text = extractor.extract(page.read())
    except MatchCancelled:
        logger.record_fetch_failure("MatchCancelled")
        logger.info("Home page fetch cancelled", url=url)
        raise
    except (FetchError, HtmlParseError) as e:
        logger.record_fetch_failure(type(e).__name__)
        logger.warning("Home page evidence unavailable", url=url, error=str(e))
        raise

    logger.record_fetch_success()
    return pattern.search(text) is not None
