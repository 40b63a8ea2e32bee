import os

import pytest

from config import LoadConfig
from transport import ProbeResponse

# Locust patches threading with gevent on import unless told not to; the
# stream tests need real threads
os.environ.setdefault("LOCUST_SKIP_MONKEY_PATCH", "1")


def ok_response(url, cache="MISS", body=b'{"id": 1}'):
    headers = {"X-Cache": cache} if cache is not None else {}
    return ProbeResponse(url=url, status=200, headers=headers, body=body, elapsed_ms=12.5)


class FakeTransport:
    """Records every GET and answers from a responder function"""

    def __init__(self, responder=None):
        self.responder = responder or (lambda url, headers, timeout: ok_response(url))
        self.calls = []
        self.closed = False

    def get(self, url, headers, timeout):
        self.calls.append((url, dict(headers), timeout))
        return self.responder(url, headers, timeout)

    def close(self):
        self.closed = True

    @property
    def urls(self):
        return [c[0] for c in self.calls]


class Sleeper:
    def __init__(self):
        self.pauses = []

    def __call__(self, seconds):
        self.pauses.append(seconds)


@pytest.fixture
def config():
    return LoadConfig(
        base_url="http://proxy.test",
        iterations=4,
        pool_size=3,
        request_delay=1.0,
        iteration_delay=2.0,
    )


@pytest.fixture
def sleeper():
    return Sleeper()


@pytest.fixture
def transport():
    return FakeTransport()
