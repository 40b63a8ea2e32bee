"""
HTTP capability used by the load driver.

Wraps a requests.Session and turns every call into a ProbeResponse.
Transport failures never raise out of get(); they come back as a response
with status 0 and a classified ErrorKind so the driver can decide whether
the backend is gone.
"""

import errno
import logging
import socket
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

import requests
from requests.structures import CaseInsensitiveDict

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    NO_ROUTE = "no_route"
    DNS_FAILURE = "dns_failure"
    OTHER = "other"

    @property
    def critical(self) -> bool:
        return self is not ErrorKind.OTHER


# Lowercased fragments, checked in order
CRITICAL_VOCABULARY = (
    ("econnrefused", ErrorKind.CONNECTION_REFUSED),
    ("connection refused", ErrorKind.CONNECTION_REFUSED),
    ("econnreset", ErrorKind.CONNECTION_RESET),
    ("connection reset", ErrorKind.CONNECTION_RESET),
    ("ehostunreach", ErrorKind.NO_ROUTE),
    ("enetunreach", ErrorKind.NO_ROUTE),
    ("no route to host", ErrorKind.NO_ROUTE),
    ("network is unreachable", ErrorKind.NO_ROUTE),
    ("enotfound", ErrorKind.DNS_FAILURE),
    ("eai_again", ErrorKind.DNS_FAILURE),
    ("name or service not known", ErrorKind.DNS_FAILURE),
    ("temporary failure in name resolution", ErrorKind.DNS_FAILURE),
    ("nodename nor servname", ErrorKind.DNS_FAILURE),
    ("failed to resolve", ErrorKind.DNS_FAILURE),
    ("etimedout", ErrorKind.TIMEOUT),
    ("timed out", ErrorKind.TIMEOUT),
    ("timeout", ErrorKind.TIMEOUT),
)

NO_ROUTE_ERRNOS = {errno.EHOSTUNREACH, errno.ENETUNREACH}


@dataclass
class ProbeResponse:
    """Result of one GET, successful or not"""
    url: str
    status: int = 0
    headers: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)
    body: Optional[bytes] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    elapsed_ms: float = 0.0

    def __post_init__(self):
        if not isinstance(self.headers, CaseInsensitiveDict):
            self.headers = CaseInsensitiveDict(self.headers or {})
        if self.error and self.error_kind is None:
            self.error_kind = classify_description(self.error)

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name)

    @property
    def is_critical(self) -> bool:
        return self.error_kind is not None and self.error_kind.critical


def classify_description(text: Optional[str]) -> ErrorKind:
    """Map an error message onto an ErrorKind using the critical vocabulary"""
    if not text:
        return ErrorKind.OTHER
    lowered = text.lower()
    for fragment, kind in CRITICAL_VOCABULARY:
        if fragment in lowered:
            return kind
    return ErrorKind.OTHER


def _exception_chain(exc: BaseException):
    """Yield exc and everything it wraps: causes, contexts, args, urllib3 reasons"""
    seen = set()
    pending = [exc]
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.append(current.__cause__)
        pending.append(current.__context__)
        reason = getattr(current, "reason", None)
        if isinstance(reason, BaseException):
            pending.append(reason)
        pending.extend(arg for arg in current.args if isinstance(arg, BaseException))


def classify_exception(exc: BaseException) -> ErrorKind:
    """Structured classification of a transport exception"""
    if isinstance(exc, requests.Timeout):
        return ErrorKind.TIMEOUT

    for inner in _exception_chain(exc):
        if isinstance(inner, ConnectionRefusedError):
            return ErrorKind.CONNECTION_REFUSED
        if isinstance(inner, ConnectionResetError):
            return ErrorKind.CONNECTION_RESET
        if isinstance(inner, socket.gaierror):
            return ErrorKind.DNS_FAILURE
        if isinstance(inner, (socket.timeout, TimeoutError)):
            return ErrorKind.TIMEOUT
        if isinstance(inner, OSError) and inner.errno in NO_ROUTE_ERRNOS:
            return ErrorKind.NO_ROUTE

    return classify_description(str(exc))


class HttpTransport:
    """GET-only client over a requests.Session. No retries."""

    def __init__(self, session: Optional[requests.Session] = None, allow_redirects: bool = True):
        self.session = session or requests.Session()
        self.allow_redirects = allow_redirects

    def get(self, url: str, headers: Mapping[str, str], timeout: float) -> ProbeResponse:
        start = time.perf_counter()
        try:
            r = self.session.get(url, headers=dict(headers), timeout=timeout, allow_redirects=self.allow_redirects)
        except requests.RequestException as e:
            elapsed = (time.perf_counter() - start) * 1000
            kind = classify_exception(e)
            logger.debug(f"GET {url} failed after {elapsed:.2f}ms ({kind.value}): {e}")
            return ProbeResponse(
                url=url,
                error=str(e),
                error_kind=kind,
                elapsed_ms=elapsed,
            )

        elapsed = (time.perf_counter() - start) * 1000
        return ProbeResponse(
            url=url,
            status=r.status_code,
            headers=r.headers,
            body=r.content,
            elapsed_ms=elapsed,
        )

    def close(self):
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
