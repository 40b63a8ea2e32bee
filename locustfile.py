"""
Locust load test for the caching proxy in front of the character API
Run with: locust -f locustfile.py --host http://localhost:8889

Settings are read from the same LOAD_* environment variables as run_load.py.
"""

import itertools
import time

from locust import HttpUser, task, constant
from locust.exception import StopUser

from checks import IMAGE_PROFILE, JSON_PROFILE, run_checks
from config import LoadConfig
from driver import make_source
from transport import ProbeResponse, classify_exception, classify_description

CONFIG = LoadConfig.from_env()

_user_numbers = itertools.count()


def to_probe_response(response) -> ProbeResponse:
    """Adapt a Locust response so the shared checks can read it"""
    error = getattr(response, "error", None)
    kind = None
    if isinstance(error, BaseException):
        kind = classify_exception(error)
    elif error:
        kind = classify_description(str(error))
    return ProbeResponse(
        url=str(getattr(response, "url", "") or ""),
        status=response.status_code or 0,
        headers=response.headers or {},
        body=response.content,
        error=str(error) if error else None,
        error_kind=kind,
    )


class CharacterCacheUser(HttpUser):
    """
    Walks the character ids in order, fetching each one as JSON and
    as an avatar image through the proxy
    """
    host = CONFIG.base_url
    wait_time = constant(CONFIG.iteration_delay)

    def on_start(self):
        """Make sure the backend is up before sending load"""
        self.source = make_source(CONFIG, stream_index=next(_user_numbers))
        if not CONFIG.health_check:
            return
        with self.client.get(
            CONFIG.health_path,
            headers=CONFIG.routing_headers(),
            timeout=CONFIG.health_timeout,
            allow_redirects=CONFIG.follow_redirects,
            name="health",
            catch_response=True,
        ) as response:
            healthy = response.status_code == CONFIG.expected_status
            if not healthy:
                response.failure(f"Health check failed: {response.status_code}")
        if not healthy:
            self.environment.runner.quit()
            raise StopUser()

    @task
    def fetch_character(self):
        identifier = self.source.next_id()
        path = CONFIG.resource_path
        self._fetch(JSON_PROFILE, identifier, f"{path}/{identifier}", f"{path}/[id]")
        time.sleep(CONFIG.request_delay)
        self._fetch(IMAGE_PROFILE, identifier, f"{path}/avatar/{identifier}.{CONFIG.image_ext}",
                    f"{path}/avatar/[id].{CONFIG.image_ext}")
        time.sleep(CONFIG.request_delay)

    def _fetch(self, profile, identifier, path, name):
        headers = dict(CONFIG.routing_headers())
        headers["Accept"] = profile.accept
        with self.client.get(path, headers=headers, timeout=CONFIG.request_timeout,
                             allow_redirects=CONFIG.follow_redirects, name=name, catch_response=True) as response:
            probe = to_probe_response(response)
            if probe.is_critical:
                response.failure(f"Critical error ({probe.error_kind.value}): {probe.error}")
            else:
                results = run_checks(probe, profile, CONFIG.expected_status, CONFIG.cache_header)
                failed = [r.name for r in results if not r.passed]
                if failed:
                    response.failure(f"ID {identifier}: " + ", ".join(failed))
                else:
                    response.success()

        # Backend unreachable: stop every user
        if probe.is_critical:
            self.environment.runner.quit()
            raise StopUser()
