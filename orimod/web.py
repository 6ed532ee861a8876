"""HTTP helpers: access-log lines, client address lookup and handler completion."""

from __future__ import annotations

import threading
from datetime import timedelta
from typing import Any, Mapping, Optional, Union

_GREEN = "\033[42;1;37m"
_BLUE = "\033[34m"
_YELLOW = "\033[33m"
_RESET = "\033[0m"
_RED = "\033[31m"
_METHOD_COLOR = "\033[44;37m"

_REAL_IP_HEADER = "X-Real-IP"
_FORWARDED_FOR_HEADER = "X-Forwarded-For"
_VALIDATED_PROXY_HEADER = "X-Real-IP,X-Forwarded-For"

Latency = Union[float, int, timedelta]


def color_for_status(code: int) -> str:
    """Return the ANSI colour sequence used for an HTTP status code."""
    if 200 <= code < 300:
        return _GREEN
    if 300 <= code < 400:
        return _BLUE
    if 400 <= code < 500:
        return _YELLOW
    if code == 0:
        return _RESET
    return _RED


def _format_latency(latency: Latency) -> str:
    seconds = latency.total_seconds() if isinstance(latency, timedelta) else float(latency)
    if seconds == 0:
        return "0s"
    magnitude = abs(seconds)
    if magnitude < 1e-6:
        return f"{seconds * 1e9:.6g}ns"
    if magnitude < 1e-3:
        return f"{seconds * 1e6:.6g}µs"
    if magnitude < 1:
        return f"{seconds * 1e3:.6g}ms"
    return f"{seconds:.6g}s"


def format_access_log(
    status_code: int,
    client_ip: str,
    method: str,
    uri: str,
    proto: str,
    latency: Latency,
    user_agent: str,
    referer: str,
) -> str:
    """Build one coloured access-log line for a finished request."""
    return (
        f"{color_for_status(status_code)} | {status_code:3d} | {color_for_status(0)} "
        f"{client_ip:>10} | {_METHOD_COLOR}{method:<6}{_RESET} {uri} {proto}  | "
        f"{_format_latency(latency):>10} | \"{user_agent}\" \"{referer}\""
    )


def _header(headers: Optional[Mapping[str, str]], name: str) -> str:
    if not headers:
        return ""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return ""


def get_ip_with_proxy_headers(headers: Optional[Mapping[str, str]], client_ip: str) -> str:
    """Prefer X-Real-IP, then X-Forwarded-For, then the peer address."""
    ip = _header(headers, _REAL_IP_HEADER)
    if ip == "":
        ip = _header(headers, _FORWARDED_FOR_HEADER)
    if ip == "":
        ip = client_ip
    return ip


def is_valid_ip(ip: str) -> bool:
    """Tell whether an address taken from a proxy header may be used."""
    return ip != ""


def get_ip_with_validated_proxy_headers(
    headers: Optional[Mapping[str, str]], client_ip: str
) -> str:
    """Use the first address of the combined proxy header if it is valid."""
    ip = _header(headers, _VALIDATED_PROXY_HEADER).split(",")[0].strip()
    if is_valid_ip(ip):
        return ip
    return client_ip


class SafeContext:
    """A request context whose handler signals when it has written the response."""

    def __init__(self, context: Any = None) -> None:
        self.context = context
        self._done = threading.Event()

    @property
    def is_done(self) -> bool:
        return self._done.is_set()

    def done(self) -> None:
        """Mark the response as written and release the waiting request."""
        self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for ``done``; return False if ``timeout`` seconds pass first."""
        return self._done.wait(timeout)