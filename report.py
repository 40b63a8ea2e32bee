"""
Aggregate results of a load run and judge it against thresholds.
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from checks import CheckResult
from config import LoadConfig
from transport import ProbeResponse


def percentile(samples: List[float], pct: float) -> float:
    """Nearest-rank percentile, nan when there are no samples"""
    if not samples:
        return float("nan")
    ordered = sorted(samples)
    index = max(0, math.ceil(pct * len(ordered)) - 1)
    return ordered[index]


@dataclass
class ThresholdResult:
    name: str
    observed: float
    limit: float
    passed: bool


@dataclass
class RunReport:
    iterations: int = 0
    requests: int = 0
    failed_requests: int = 0
    latencies_ms: List[float] = field(default_factory=list)
    checks: Dict[str, List[int]] = field(default_factory=dict)  # label -> [passes, fails]
    cache_statuses: Counter = field(default_factory=Counter)
    aborted: bool = False
    abort_reason: Optional[str] = None

    def record_response(self, response: ProbeResponse, expected_status: int, cache_header: str):
        self.requests += 1
        if response.error is not None or response.status != expected_status:
            self.failed_requests += 1
        if response.error is None:
            self.latencies_ms.append(response.elapsed_ms)
        cache_value = response.header(cache_header)
        self.cache_statuses[cache_value if cache_value is not None else "(missing)"] += 1

    def record_checks(self, results: Iterable[CheckResult]):
        for result in results:
            tally = self.checks.setdefault(result.name, [0, 0])
            tally[0 if result.passed else 1] += 1

    def abort(self, reason: str):
        self.aborted = True
        self.abort_reason = reason

    @property
    def checks_passed(self) -> int:
        return sum(t[0] for t in self.checks.values())

    @property
    def checks_failed(self) -> int:
        return sum(t[1] for t in self.checks.values())

    @property
    def failed_rate(self) -> float:
        return self.failed_requests / self.requests if self.requests else 0.0

    @property
    def check_rate(self) -> float:
        total = self.checks_passed + self.checks_failed
        return self.checks_passed / total if total else 1.0

    @property
    def p95_ms(self) -> float:
        return percentile(self.latencies_ms, 0.95)

    def evaluate(self, config: LoadConfig) -> List[ThresholdResult]:
        p95 = self.p95_ms
        return [
            ThresholdResult("failed request rate", self.failed_rate, config.max_failed_rate,
                            self.failed_rate <= config.max_failed_rate),
            ThresholdResult("check pass rate", self.check_rate, config.min_check_rate,
                            self.check_rate >= config.min_check_rate),
            # No latency samples means nothing was slow
            ThresholdResult("p95 latency (ms)", p95, config.max_p95_ms,
                            math.isnan(p95) or p95 <= config.max_p95_ms),
        ]

    def passed(self, config: LoadConfig) -> bool:
        return not self.aborted and all(t.passed for t in self.evaluate(config))

    def merge(self, other: "RunReport") -> "RunReport":
        merged = RunReport(
            iterations=self.iterations + other.iterations,
            requests=self.requests + other.requests,
            failed_requests=self.failed_requests + other.failed_requests,
            latencies_ms=self.latencies_ms + other.latencies_ms,
            cache_statuses=self.cache_statuses + other.cache_statuses,
            aborted=self.aborted or other.aborted,
            abort_reason=self.abort_reason or other.abort_reason,
        )
        for source in (self.checks, other.checks):
            for name, (ok, bad) in source.items():
                tally = merged.checks.setdefault(name, [0, 0])
                tally[0] += ok
                tally[1] += bad
        return merged

    def format_summary(self, config: LoadConfig) -> str:
        lines = [
            "Test Summary",
            "===========",
            f"Iterations completed: {self.iterations}",
            f"Requests: {self.requests} (failed: {self.failed_requests}, {self.failed_rate:.1%})",
        ]
        if self.latencies_ms:
            avg = sum(self.latencies_ms) / len(self.latencies_ms)
            lines.append(f"Latency (ms): avg={avg:.2f} | p95={self.p95_ms:.2f} | max={max(self.latencies_ms):.2f}")

        if self.checks:
            lines.append("")
            lines.append("Checks")
            lines.append("-" * 50)
            for name, (ok, bad) in self.checks.items():
                mark = "✅" if bad == 0 else "❌"
                lines.append(f"{mark} {name:<32} {ok:>6} passed {bad:>6} failed")

        if self.cache_statuses:
            lines.append("")
            breakdown = ", ".join(f"{k}={v}" for k, v in sorted(self.cache_statuses.items()))
            lines.append(f"{config.cache_header} values: {breakdown}")

        lines.append("")
        lines.append("Thresholds")
        lines.append("-" * 50)
        for t in self.evaluate(config):
            mark = "✅" if t.passed else "❌"
            lines.append(f"{mark} {t.name}: {t.observed:.3f} (limit {t.limit})")

        lines.append("")
        if self.aborted:
            lines.append(f"⛔ ABORTED: {self.abort_reason}")
        elif self.passed(config):
            lines.append("✅ PASSED")
        else:
            lines.append("❌ FAILED: thresholds not met")
        return "\n".join(lines)
