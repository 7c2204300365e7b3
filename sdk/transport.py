"""HTTP transport — one POST per Bot API method call.

The transport knows nothing about envelopes or retries: it sends bytes to
``<base_uri>/bot<token>/<method>`` and returns the response bytes, turning
every :mod:`requests` failure into :class:`~sdk.exceptions.NetworkError`.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from sdk.exceptions import NetworkError

DEFAULT_BASE_URL = "https://api.telegram.org"


class Transport:
    """Thin wrapper around per-thread :class:`requests.Session` objects.

    Method calls run on worker threads and a session is not thread-safe, so
    each thread lazily gets its own session.  An injected session is used
    by every thread as-is.

    Args:
        base_url: Bot API server URI.  It may contain a path (useful behind a
            reverse proxy) and a query, which is moved after the method path:

            =======================  ========================================
            ``base_url``             request URL
            =======================  ========================================
            ``http://localhost``     ``http://localhost/bot<T>/<M>``
            ``http://localhost/foo`` ``http://localhost/foo/bot<T>/<M>``
            ``http://localhost/?foo`` ``http://localhost/bot<T>/<M>?foo``
            =======================  ========================================

        proxies: Optional ``requests`` proxy mapping.
        session: Pre-built session shared by all threads (tests,
            connection-pool tuning).
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        proxies: Optional[Dict[str, str]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        parts = urlsplit(base_url)
        self._scheme = parts.scheme
        self._netloc = parts.netloc
        self._path = parts.path.rstrip("/")
        self._query = parts.query
        self._proxies = proxies
        self._shared_session = session
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._lock = threading.Lock()

    @property
    def session(self) -> requests.Session:
        """The session used by the calling thread."""
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._lock:
                self._sessions.append(session)
        return session

    @property
    def base_url(self) -> str:
        """The server URI without the query part."""
        return urlunsplit((self._scheme, self._netloc, self._path, "", ""))

    def method_url(self, token: str, method: str) -> str:
        """Build the full URL for *method*."""
        path = f"{self._path}/bot{token}/{method}"
        return urlunsplit((self._scheme, self._netloc, path, self._query, ""))

    def file_url(self, token: str, file_path: str) -> str:
        """Build the download URL for a ``File.file_path``."""
        path = f"{self._path}/file/bot{token}/{file_path.lstrip('/')}"
        return urlunsplit((self._scheme, self._netloc, path, self._query, ""))

    def send(
        self,
        token: str,
        method: str,
        body: bytes,
        boundary: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> bytes:
        """POST *body* to *method* and return the raw response bytes.

        The HTTP status is ignored: Bot API errors arrive as a
        JSON envelope with ``ok: false`` and are classified by the codec.

        Raises:
            NetworkError: On connection, TLS or transport-level timeout failures.
        """
        if boundary is None:
            content_type = "application/json"
        else:
            content_type = f"multipart/form-data; boundary={boundary}"

        try:
            response = self.session.post(
                self.method_url(token, method),
                data=body,
                headers={"Content-Type": content_type},
                timeout=timeout,
                proxies=self._proxies,
            )
        except requests.RequestException as exc:
            raise NetworkError(exc) from exc
        return response.content

    def download(self, token: str, file_path: str, timeout: Optional[float] = None) -> bytes:
        """Download a file from the Bot API file endpoint.

        Raises:
            NetworkError: On transport failures or a non-2xx status.
        """
        try:
            response = self.session.get(
                self.file_url(token, file_path), timeout=timeout, proxies=self._proxies,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            raise NetworkError(exc) from exc
        return response.content

    def close(self) -> None:
        """Release pooled connections of every session."""
        if self._shared_session is not None:
            self._shared_session.close()
        with self._lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()
