"""Pooled HTTP client with blocking and background requests."""

from __future__ import annotations

import concurrent.futures
import threading
import time
from dataclasses import dataclass, field
from typing import Mapping, Optional, Union

import requests
from requests.adapters import HTTPAdapter

Body = Union[bytes, str, None]


@dataclass
class HttpResponse:
    """The outcome of one HTTP request."""

    status_code: int = 0
    status: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""


class PendingResponse:
    """A request running in the background."""

    def __init__(self, future: "concurrent.futures.Future[HttpResponse]") -> None:
        self._future = future

    def get(self, timeout_ms: int) -> HttpResponse:
        """Wait for the response; raise TimeoutError after ``timeout_ms``."""
        try:
            return self._future.result(timeout=timeout_ms / 1000)
        except concurrent.futures.TimeoutError:
            raise TimeoutError(f"getting the return result timeout [{timeout_ms}]ms") from None


class HttpClientModule:
    """Sends HTTP requests through a shared connection pool."""

    def __init__(self) -> None:
        self._session: Optional[requests.Session] = None
        self._timeout: Optional[float] = None
        self._idle_timeout: Optional[float] = None
        self._last_used: Optional[float] = None
        self._lock = threading.Lock()

    def configure(
        self,
        proxy_url: str = "",
        max_pool: int = 10,
        idle_conn_timeout: float = 0,
        timeout: float = 0,
    ) -> None:
        """Build a pooled session; certificates are not verified."""
        session = requests.Session()
        session.trust_env = False
        session.verify = False
        adapter = HTTPAdapter(pool_connections=max_pool, pool_maxsize=max_pool)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        if proxy_url:
            session.proxies = {"http": proxy_url, "https": proxy_url}
        self._session = session
        self._idle_timeout = idle_conn_timeout or None
        self._last_used = None
        self.set_timeout(timeout)

    def init_http_client(self, session: requests.Session, timeout: float = 0) -> None:
        """Use a session built by the caller."""
        self._session = session
        self._idle_timeout = None
        self._last_used = None
        self.set_timeout(timeout)

    def set_timeout(self, value: float) -> None:
        """Set the request timeout in seconds; 0 means no timeout."""
        self._timeout = value or None

    def _drop_idle_connections(self) -> None:
        now = time.monotonic()
        with self._lock:
            idle = (
                self._idle_timeout is not None
                and self._last_used is not None
                and now - self._last_used > self._idle_timeout
            )
            self._last_used = now
        if idle and self._session is not None:
            for adapter in self._session.adapters.values():
                adapter.close()

    def request(
        self,
        method: str,
        url: str,
        body: Body = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HttpResponse:
        """Send a request and read the whole response body."""
        if self._session is None:
            raise RuntimeError("Call the init function first")
        self._drop_idle_connections()
        with self._session.request(
            method,
            url,
            data=body or None,
            headers=dict(headers) if headers is not None else None,
            timeout=self._timeout,
            stream=True,
        ) as rsp:
            content = rsp.content
            return HttpResponse(
                status_code=rsp.status_code,
                status=f"{rsp.status_code} {rsp.reason}".strip(),
                headers=rsp.headers,
                body=content,
            )

    def sync_request(
        self,
        method: str,
        url: str,
        body: Body = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> PendingResponse:
        """Start a request in the background and return a handle to its result."""
        future: concurrent.futures.Future[HttpResponse] = concurrent.futures.Future()

        def run() -> None:
            try:
                future.set_result(self.request(method, url, body, headers))
            except BaseException as exc:  # delivered to the waiter
                future.set_exception(exc)

        threading.Thread(target=run, daemon=True).start()
        return PendingResponse(future)