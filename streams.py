"""
Run several independent virtual streams in parallel.

Each stream owns its transport and identifier source. The only thing the
streams share is the abort event, so one critical error stops all of them.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from functools import partial
from typing import Callable, Optional

from config import LoadConfig
from driver import LoadDriver, RunAborted, make_source, probe_health
from report import RunReport
from transport import HttpTransport

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.2  # seconds between checks on running streams


def run_streams(config: LoadConfig, transport_factory: Optional[Callable] = None,
                sleep: Callable[[float], None] = time.sleep,
                clock: Callable[[], float] = time.monotonic) -> RunReport:
    """Health-gate once, then run config.virtual_streams drivers and merge their reports"""
    if transport_factory is None:
        transport_factory = partial(HttpTransport, allow_redirects=config.follow_redirects)

    if config.health_check:
        transport = transport_factory()
        try:
            probe_health(config, transport)
        except RunAborted as e:
            logger.error(f"Run aborted before the first iteration: {e.reason}")
            report = RunReport()
            report.abort(e.reason)
            return report
        finally:
            _close(transport)

    stream_config = config.model_copy(update={"health_check": False})
    abort_event = threading.Event()
    logger.info(f"Starting {config.virtual_streams} virtual stream(s) against {config.root}")

    def run_one(index: int) -> RunReport:
        transport = transport_factory()
        try:
            driver = LoadDriver(
                stream_config,
                transport,
                source=make_source(config, stream_index=index),
                sleep=sleep,
                clock=clock,
                abort_event=abort_event,
                name=f"stream-{index}",
            )
            return driver.run()
        except BaseException:
            abort_event.set()
            raise
        finally:
            _close(transport)

    merged = RunReport()
    with ThreadPoolExecutor(max_workers=config.virtual_streams) as executor:
        pending = {executor.submit(run_one, i) for i in range(config.virtual_streams)}
        try:
            # Short waits keep the main thread responsive to Ctrl+C
            while pending:
                done, pending = wait(pending, timeout=POLL_INTERVAL)
                for f in done:
                    merged = merged.merge(f.result())
        except BaseException:
            logger.warning("Stopping all streams")
            abort_event.set()
            raise
    return merged


def _close(transport):
    close = getattr(transport, "close", None)
    if close is not None:
        close()
