"""
HTTP Connector
==============

Opens HTTP responses against a camera endpoint.

This module:
    - Applies credentials (Basic or Digest), cookies, headers, user agent
    - Uses the configured timeout for both connect and read
    - Speaks HTTP/1.0 when the camera needs it
    - Derives the multipart boundary from the Content-Type header

Two request styles are supported by the same Connector:
    - Polling: open(cache_bust=True) adds a random "fake=" query parameter
      so every request fetches a fresh JPEG
    - Multipart: open() keeps one streaming response open, frames are
      pulled from its body until it ends

Example:
    connector = Connector(StreamConfig.create(url="http://cam/stream"))

    with connector.open() as handle:
        boundary = multipart_boundary(handle.content_type)
        for chunk in handle.iter_chunks(1024):
            ...
"""

import logging
import random
import threading
from typing import Dict, Iterator, Optional
from urllib.parse import urlsplit, urlunsplit

import requests
import urllib3
from requests.adapters import HTTPAdapter
from requests.auth import HTTPBasicAuth, HTTPDigestAuth
from urllib3.connection import HTTPConnection, HTTPSConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool

from camstream.stream.errors import ProtocolError, TransientIOError
from camstream.stream.source_config import AUTH_DIGEST, StreamConfig


logger = logging.getLogger(__name__)


# =============================================================================
# HTTP/1.0 transport
# =============================================================================

class _Http10Connection(HTTPConnection):
    _http_vsn = 10
    _http_vsn_str = "HTTP/1.0"


class _Http10SConnection(HTTPSConnection):
    _http_vsn = 10
    _http_vsn_str = "HTTP/1.0"


class _Http10ConnectionPool(HTTPConnectionPool):
    ConnectionCls = _Http10Connection


class _Http10SConnectionPool(HTTPSConnectionPool):
    ConnectionCls = _Http10SConnection


_HTTP10_POOLS = {
    "http": _Http10ConnectionPool,
    "https": _Http10SConnectionPool,
}


class Http10Adapter(HTTPAdapter):
    """Transport adapter whose connections send HTTP/1.0 request lines."""

    def init_poolmanager(self, *args, **kwargs) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = dict(_HTTP10_POOLS)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        manager = super().proxy_manager_for(proxy, **proxy_kwargs)
        manager.pool_classes_by_scheme = dict(_HTTP10_POOLS)
        return manager


# =============================================================================
# Helpers
# =============================================================================

def parse_pairs(text: str, separator: str) -> Dict[str, str]:
    """
    Parse "name=value" pairs joined by a separator.

    Entries without "=" or without a name are ignored. Values may
    themselves contain "=".
    """
    pairs: Dict[str, str] = {}
    for item in (text or "").split(separator):
        name, sep, value = item.partition("=")
        name = name.strip()
        if sep and name:
            pairs[name] = value.strip()
    return pairs


def multipart_boundary(content_type: Optional[str]) -> bytes:
    """
    Derive the boundary delimiter from a multipart Content-Type header.

    Args:
        content_type: e.g. 'multipart/x-mixed-replace; boundary="frame"'

    Returns:
        Boundary bytes, always prefixed with "--"

    Raises:
        ProtocolError: If the header is missing or has no "=" parameter
    """
    if not content_type or "=" not in content_type:
        raise ProtocolError(
            f"Invalid content-type header ({content_type!r}). "
            f"The camera is likely not returning a proper MJPEG stream."
        )

    marker = content_type.lower().find("boundary=")
    if marker != -1:
        value = content_type[marker + len("boundary="):]
    else:
        value = content_type.split("=", 1)[1]

    value = value.split(";", 1)[0].replace('"', "").strip()
    if not value:
        raise ProtocolError(f"Empty multipart boundary in {content_type!r}")

    if not value.startswith("--"):
        value = "--" + value
    return value.encode("utf-8")


def with_cache_buster(url: str, token: int) -> str:
    """Append a throwaway query parameter so caches never answer."""
    return f"{url}{'&' if '?' in url else '?'}fake={token}"


def redact_url(url: str) -> str:
    """Strip userinfo from a URL for logging."""
    parts = urlsplit(url)
    if "@" not in parts.netloc:
        return url
    netloc = parts.netloc.rsplit("@", 1)[1]
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


# =============================================================================
# Connection Handle
# =============================================================================

class ConnectionHandle:
    """
    One open HTTP response.

    Owned by a single read loop iteration and closed on every exit path;
    use it as a context manager. abort() may be called from another
    thread to unblock a pending read.

    Attributes:
        content_type: Value of the Content-Type response header
        status_code: HTTP status code
    """

    def __init__(self, response: requests.Response) -> None:
        self._response = response
        self._closed = False
        self._lock = threading.Lock()

    @property
    def content_type(self) -> Optional[str]:
        return self._response.headers.get("Content-Type")

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def closed(self) -> bool:
        return self._closed

    def iter_chunks(self, size: int) -> Iterator[bytes]:
        """
        Yield body chunks of at most `size` bytes until the body ends.

        Each chunk is whatever has arrived, so a frame followed by a
        quiet camera is not held back waiting for a full `size` read.

        Raises:
            TransientIOError: On read timeout or connection reset
        """
        raw = self._response.raw
        try:
            while True:
                chunk = raw.read1(size, decode_content=True)
                if not chunk:
                    return
                yield chunk
        except (urllib3.exceptions.HTTPError, requests.RequestException, OSError) as e:
            raise TransientIOError(f"Stream read failed: {e}") from e

    def close(self) -> None:
        """Release the response and its connection. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._response.close()

    def abort(self) -> None:
        """
        Unblock a read in progress on another thread, then close.

        Closing alone does not wake a thread blocked in recv(); shutting
        the socket down makes that read return at once.
        """
        if self._closed:
            return
        try:
            self._response.raw.shutdown()
        except (OSError, ValueError) as e:
            # Connection already released or torn down
            logger.debug(f"Socket shutdown skipped: {e}")
        self.close()

    def __enter__(self) -> "ConnectionHandle":
        return self

    def __exit__(self, *args) -> None:
        self.close()


# =============================================================================
# Connector
# =============================================================================

class Connector:
    """
    Opens HTTP responses for one camera.

    Holds a requests.Session configured from a StreamConfig. The
    session is reused across reconnects and released by close().

    Attributes:
        config: Resolved connection parameters
    """

    def __init__(
        self,
        config: StreamConfig,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize connector.

        Args:
            config: Resolved connection parameters
            session: Session to configure and use (a new one if None)
        """
        self.config = config
        self._session = session if session is not None else requests.Session()
        self._random = random.Random()
        self._configure(self._session)

    @property
    def session(self) -> requests.Session:
        return self._session

    def _configure(self, session: requests.Session) -> None:
        config = self.config

        if config.has_credentials:
            auth_cls = HTTPDigestAuth if config.auth_scheme == AUTH_DIGEST else HTTPBasicAuth
            session.auth = auth_cls(config.login, config.password)

        session.headers["User-Agent"] = config.user_agent
        session.headers["Accept"] = "multipart/x-mixed-replace, image/jpeg, */*"
        session.headers.update(parse_pairs(config.headers, "&"))

        for name, value in parse_pairs(config.cookies, ";").items():
            session.cookies.set(name, value)

        if config.proxy:
            session.proxies = {"http": config.proxy, "https": config.proxy}

        if config.use_http10:
            adapter = Http10Adapter()
            session.mount("http://", adapter)
            session.mount("https://", adapter)
            session.headers["Connection"] = "close"

    def open(self, cache_bust: bool = False) -> ConnectionHandle:
        """
        Issue a GET request and return the open response.

        Args:
            cache_bust: Append a random "fake=" query parameter

        Returns:
            Open ConnectionHandle (caller closes it)

        Raises:
            TransientIOError: On connect failure, timeout or HTTP error status
        """
        url = self.config.url
        if cache_bust:
            url = with_cache_buster(url, self._random.randint(0, 2**31 - 1))

        timeout = self.config.request_timeout
        try:
            response = self._session.get(url, stream=True, timeout=(timeout, timeout))
        except requests.RequestException as e:
            raise TransientIOError(
                f"Connection to {redact_url(self.config.url)} failed: {e}"
            ) from e

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            response.close()
            raise TransientIOError(
                f"HTTP {response.status_code} from {redact_url(self.config.url)}"
            ) from e

        logger.debug(
            f"Opened {redact_url(self.config.url)} "
            f"(status={response.status_code}, "
            f"content-type={response.headers.get('Content-Type')!r})"
        )
        return ConnectionHandle(response)

    def close(self) -> None:
        """Release the session's pooled connections."""
        self._session.close()
