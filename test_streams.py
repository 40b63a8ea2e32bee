import _thread
import threading
import time
from unittest import mock

import pytest

from conftest import FakeTransport, ok_response
from config import LoadConfig
from streams import run_streams
from transport import HttpTransport, ProbeResponse


def no_sleep(seconds):
    pass


class TransportFactory:
    def __init__(self, responder=None):
        self.responder = responder
        self.created = []
        self._lock = threading.Lock()

    def __call__(self):
        transport = FakeTransport(self.responder)
        with self._lock:
            self.created.append(transport)
        return transport


def make_config(**kwargs):
    values = dict(base_url="http://proxy.test", iterations=5, pool_size=4,
                  request_delay=0, iteration_delay=0)
    values.update(kwargs)
    return LoadConfig(**values)


def test_single_stream_matches_plain_driver():
    factory = TransportFactory()
    report = run_streams(make_config(), transport_factory=factory, sleep=no_sleep)

    health, stream = factory.created
    assert health.urls == ["http://proxy.test/health"]
    assert "http://proxy.test/health" not in stream.urls
    assert len(stream.urls) == 10
    assert report.iterations == 5
    assert not report.aborted


def test_streams_run_independently_and_merge():
    factory = TransportFactory()
    report = run_streams(make_config(virtual_streams=3), transport_factory=factory, sleep=no_sleep)

    streams = factory.created[1:]
    assert len(streams) == 3
    for transport in streams:
        # every stream has its own cursor starting at the first id
        assert transport.urls[0] == "http://proxy.test/api/character/1"
        assert len(transport.urls) == 10
    assert report.iterations == 15
    assert report.requests == 30
    assert all(t.closed for t in factory.created)


def test_random_mode_uses_private_seeded_sources():
    factory = TransportFactory()
    config = make_config(virtual_streams=2, identifier_mode="random", seed=3, pool_size=50)
    run_streams(config, transport_factory=factory, sleep=no_sleep)
    first_run = [t.urls for t in factory.created[1:]]

    factory = TransportFactory()
    run_streams(config, transport_factory=factory, sleep=no_sleep)
    second_run = [t.urls for t in factory.created[1:]]

    assert sorted(first_run) == sorted(second_run)


def test_failed_health_gate_starts_no_streams():
    factory = TransportFactory(lambda url, h, t: ProbeResponse(url=url, error="getaddrinfo ENOTFOUND nginx"))
    report = run_streams(make_config(virtual_streams=4), transport_factory=factory, sleep=no_sleep)

    assert len(factory.created) == 1
    assert report.aborted
    assert report.iterations == 0


def test_critical_error_in_one_stream_stops_all():
    def responder(url, headers, timeout):
        if url.endswith("/api/character/2"):
            return ProbeResponse(url=url, error="connect ECONNREFUSED")
        return ok_response(url)

    factory = TransportFactory(responder)
    config = make_config(virtual_streams=2, iterations=50, health_check=False)
    report = run_streams(config, transport_factory=factory, sleep=no_sleep)

    assert report.aborted
    assert report.iterations < 100
    for transport in factory.created:
        assert "http://proxy.test/api/character/avatar/2.jpeg" not in transport.urls


def short_sleep(seconds):
    time.sleep(0.005)


def test_ctrl_c_stops_every_stream():
    factory = TransportFactory()
    config = make_config(virtual_streams=2, iterations=300, health_check=False)
    timer = threading.Timer(0.3, _thread.interrupt_main)
    timer.start()
    try:
        with pytest.raises(KeyboardInterrupt):
            run_streams(config, transport_factory=factory, sleep=short_sleep)
    finally:
        timer.cancel()

    sent = sum(len(t.urls) for t in factory.created)
    assert sent < 300 * 2
    assert all(t.closed for t in factory.created)


def test_crashing_stream_stops_the_others():
    created = []
    lock = threading.Lock()

    def factory():
        with lock:
            first = not created
            if first:
                def responder(url, headers, timeout):
                    if url.endswith("/api/character/2"):
                        raise RuntimeError("responder exploded")
                    return ok_response(url)
                transport = FakeTransport(responder)
            else:
                transport = FakeTransport()
            created.append(transport)
            return transport

    config = make_config(virtual_streams=2, iterations=200, health_check=False)
    with pytest.raises(RuntimeError):
        run_streams(config, transport_factory=factory, sleep=short_sleep)

    healthy = created[1]
    assert len(healthy.urls) < 200 * 2
    assert all(t.closed for t in created)


def test_default_transport_follows_redirect_setting():
    config = make_config(follow_redirects=False, iterations=0, health_check=False)
    with mock.patch("streams.HttpTransport", wraps=HttpTransport) as transport_cls:
        run_streams(config, sleep=no_sleep)
    transport_cls.assert_called_once_with(allow_redirects=False)
