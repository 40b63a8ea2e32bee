"""
Sequential load driver.

Runs a bounded number of iterations against the caching proxy. Every
iteration fetches one character as JSON and then its avatar image, checks
both responses and pauses between requests. The run stops for good when
the health probe fails or a request hits a critical transport error.
"""

import logging
import threading
import time
from typing import Callable, Optional

from checks import IMAGE_PROFILE, JSON_PROFILE, RequestProfile, all_passed, run_checks
from config import AbortPolicy, IdentifierMode, LoadConfig
from identifier_pool import Cursor, IdentifierPool, RandomPicker
from report import RunReport
from transport import ProbeResponse

logger = logging.getLogger(__name__)


class RunAborted(Exception):
    """Terminal stop signal for the whole run"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


def make_source(config: LoadConfig, stream_index: int = 0):
    """Private identifier source for one stream"""
    pool = IdentifierPool(config.pool_size)
    if config.identifier_mode == IdentifierMode.RANDOM:
        seed = None if config.seed is None else config.seed + stream_index
        return RandomPicker(pool, seed=seed)
    return Cursor(pool)


def probe_health(config: LoadConfig, transport) -> ProbeResponse:
    """
    Check the backend before any load is sent.

    Raises:
        RunAborted: if the probe does not return the expected status
    """
    url = config.health_url()
    response = transport.get(url, config.routing_headers(), config.health_timeout)
    if response.status != config.expected_status:
        detail = response.error or f"status {response.status}"
        raise RunAborted(f"health check failed for {url}: {detail}")
    logger.info(f"Health check OK: {url} - Status: {response.status}")
    return response


class LoadDriver:
    """One virtual stream: strictly sequential iterations"""

    def __init__(self, config: LoadConfig, transport, source=None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic,
                 abort_event: Optional[threading.Event] = None,
                 name: str = "stream-0"):
        self.config = config
        self.transport = transport
        self.source = source or make_source(config)
        self.sleep = sleep
        self.clock = clock
        self.abort_event = abort_event
        self.name = name
        self.report = RunReport()

    def run(self) -> RunReport:
        """Drive the whole run. Always returns the report, aborted or not."""
        try:
            if self.config.health_check:
                probe_health(self.config, self.transport)
            self._iterate()
        except RunAborted as e:
            logger.error(f"[{self.name}] Run aborted: {e.reason}")
            self.report.abort(e.reason)
            if self.abort_event is not None:
                self.abort_event.set()
        return self.report

    def _should_continue(self, started: float) -> bool:
        if self.abort_event is not None and self.abort_event.is_set():
            return False
        if self.config.iterations is not None and self.report.iterations >= self.config.iterations:
            return False
        if self.config.duration is not None and self.clock() - started >= self.config.duration:
            return False
        return True

    def _iterate(self):
        started = self.clock()
        first = True
        while self._should_continue(started):
            if not first:
                self.sleep(self.config.iteration_delay)
                # Another stream may have aborted, or time run out, during the pause
                if not self._should_continue(started):
                    break
            first = False
            self.run_iteration()

    def run_iteration(self):
        identifier = self.source.next_id()
        self._fetch(JSON_PROFILE, identifier, self.config.json_url(identifier))
        self.sleep(self.config.request_delay)
        if self.abort_event is not None and self.abort_event.is_set():
            return
        self._fetch(IMAGE_PROFILE, identifier, self.config.image_url(identifier))
        self.sleep(self.config.request_delay)
        self.report.iterations += 1

    def _fetch(self, profile: RequestProfile, identifier: int, url: str) -> ProbeResponse:
        config = self.config
        headers = dict(config.routing_headers())
        headers["Accept"] = profile.accept

        response = self.transport.get(url, headers, config.request_timeout)
        self.report.record_response(response, config.expected_status, config.cache_header)

        logger.info(
            f"{profile.log_prefix} ID: {identifier} - Status: {response.status} - "
            f"{config.cache_header}: {response.header(config.cache_header)}"
        )

        if response.is_critical:
            raise RunAborted(
                f"critical transport error ({response.error_kind.value}) on {url}: {response.error}"
            )

        results = run_checks(response, profile, config.expected_status, config.cache_header)
        self.report.record_checks(results)
        for result in results:
            if result.passed:
                logger.debug(f"{profile.log_prefix} ID: {identifier} - check '{result.name}' passed")
            else:
                logger.warning(f"{profile.log_prefix} ID: {identifier} - check '{result.name}' failed")

        if config.abort_policy == AbortPolicy.STRICT and not all_passed(results):
            failed = ", ".join(r.name for r in results if not r.passed)
            raise RunAborted(f"check failed on {url}: {failed}")

        return response
