import errno
import socket
from unittest import mock

import pytest
import requests
from urllib3.exceptions import MaxRetryError, NewConnectionError

from transport import (
    ErrorKind,
    HttpTransport,
    ProbeResponse,
    classify_description,
    classify_exception,
)


def chained(outer, inner):
    outer.__cause__ = inner
    return outer


@pytest.mark.parametrize("text, kind", [
    ("connect ECONNREFUSED 127.0.0.1:8889", ErrorKind.CONNECTION_REFUSED),
    ("[Errno 111] Connection refused", ErrorKind.CONNECTION_REFUSED),
    ("read ECONNRESET", ErrorKind.CONNECTION_RESET),
    ("Connection reset by peer", ErrorKind.CONNECTION_RESET),
    ("dial tcp: connect: no route to host", ErrorKind.NO_ROUTE),
    ("getaddrinfo ENOTFOUND nginx", ErrorKind.DNS_FAILURE),
    ("[Errno -2] Name or service not known", ErrorKind.DNS_FAILURE),
    ("request timeout", ErrorKind.TIMEOUT),
    ("Read timed out. (read timeout=30)", ErrorKind.TIMEOUT),
    ("Exceeded 30 redirects.", ErrorKind.OTHER),
    ("", ErrorKind.OTHER),
    (None, ErrorKind.OTHER),
])
def test_classify_description(text, kind):
    assert classify_description(text) is kind


def test_only_other_is_not_critical():
    assert not ErrorKind.OTHER.critical
    assert all(k.critical for k in ErrorKind if k is not ErrorKind.OTHER)


def test_requests_timeout_is_timeout():
    assert classify_exception(requests.ConnectTimeout("slow")) is ErrorKind.TIMEOUT
    assert classify_exception(requests.ReadTimeout("slow")) is ErrorKind.TIMEOUT


def test_chained_os_errors_are_classified_by_type():
    refused = chained(requests.ConnectionError("boom"), ConnectionRefusedError(errno.ECONNREFUSED, "nope"))
    reset = chained(requests.ConnectionError("boom"), ConnectionResetError(errno.ECONNRESET, "nope"))
    dns = chained(requests.ConnectionError("boom"), socket.gaierror(-2, "nope"))
    no_route = chained(requests.ConnectionError("boom"), OSError(errno.EHOSTUNREACH, "nope"))

    assert classify_exception(refused) is ErrorKind.CONNECTION_REFUSED
    assert classify_exception(reset) is ErrorKind.CONNECTION_RESET
    assert classify_exception(dns) is ErrorKind.DNS_FAILURE
    assert classify_exception(no_route) is ErrorKind.NO_ROUTE


def test_urllib3_wrapped_refusal_falls_back_to_message():
    reason = NewConnectionError(None, "Failed to establish a new connection: [Errno 111] Connection refused")
    exc = requests.ConnectionError(MaxRetryError(None, "/api/character/1", reason=reason))
    assert classify_exception(exc) is ErrorKind.CONNECTION_REFUSED


def test_unrelated_error_is_other():
    assert classify_exception(requests.TooManyRedirects("loop")) is ErrorKind.OTHER


def test_probe_response_headers_are_case_insensitive():
    response = ProbeResponse(url="u", status=200, headers={"x-cache": "HIT"})
    assert response.header("X-Cache") == "HIT"
    assert response.header("X-CACHE") == "HIT"
    assert response.header("Age") is None


def test_probe_response_classifies_bare_error_text():
    response = ProbeResponse(url="u", error="dial: ECONNREFUSED")
    assert response.error_kind is ErrorKind.CONNECTION_REFUSED
    assert response.is_critical


def test_transport_returns_response_fields():
    raw = requests.Response()
    raw.status_code = 200
    raw.headers["X-Cache"] = "MISS"
    raw._content = b"payload"
    session = mock.Mock(spec=requests.Session)
    session.get.return_value = raw

    response = HttpTransport(session).get("http://proxy.test/x", {"Accept": "image/jpeg"}, 30)

    session.get.assert_called_once_with(
        "http://proxy.test/x", headers={"Accept": "image/jpeg"}, timeout=30, allow_redirects=True
    )
    assert response.status == 200
    assert response.body == b"payload"
    assert response.header("x-cache") == "MISS"
    assert response.error is None
    assert response.elapsed_ms >= 0


def test_transport_turns_failures_into_responses():
    session = mock.Mock(spec=requests.Session)
    session.get.side_effect = chained(
        requests.ConnectionError("Connection aborted"), ConnectionRefusedError(errno.ECONNREFUSED, "refused")
    )

    response = HttpTransport(session).get("http://proxy.test/x", {}, 30)

    assert response.status == 0
    assert response.body is None
    assert response.error_kind is ErrorKind.CONNECTION_REFUSED
    assert response.is_critical


def test_transport_closes_session():
    session = mock.Mock(spec=requests.Session)
    with HttpTransport(session):
        pass
    session.close.assert_called_once()


def test_redirect_following_can_be_disabled():
    raw = requests.Response()
    raw.status_code = 301
    raw._content = b""
    session = mock.Mock(spec=requests.Session)
    session.get.return_value = raw

    response = HttpTransport(session, allow_redirects=False).get("http://proxy.test/x", {}, 30)

    assert session.get.call_args.kwargs["allow_redirects"] is False
    assert response.status == 301
