"""
Per-response checks for the JSON and image requests.
"""

from dataclasses import dataclass
from typing import List

from transport import ProbeResponse


@dataclass(frozen=True)
class RequestProfile:
    """One of the two requests every iteration makes"""
    name: str
    accept: str
    log_prefix: str
    status_label: str
    body_label: str

    def labels(self, expected_status: int, cache_header: str):
        return (
            self.status_label.format(status=expected_status),
            self.body_label,
            f"{cache_header} is defined ({self.name})",
        )


JSON_PROFILE = RequestProfile(
    name="json",
    accept="application/json",
    log_prefix="JSON",
    status_label="status is {status}",
    body_label="body is not empty",
)

IMAGE_PROFILE = RequestProfile(
    name="img",
    accept="image/jpeg",
    log_prefix="IMG",
    status_label="status is {status} (img)",
    body_label="image is not empty",
)


@dataclass(frozen=True)
class CheckResult:
    name: str
    passed: bool


def run_checks(response: ProbeResponse, profile: RequestProfile,
               expected_status: int = 200, cache_header: str = "X-Cache") -> List[CheckResult]:
    """Evaluate status, body and cache-header presence. Has no side effects."""
    status_label, body_label, header_label = profile.labels(expected_status, cache_header)
    return [
        CheckResult(status_label, response.status == expected_status),
        CheckResult(body_label, bool(response.body)),
        CheckResult(header_label, response.header(cache_header) is not None),
    ]


def all_passed(results: List[CheckResult]) -> bool:
    return all(r.passed for r in results)
