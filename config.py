"""
Run configuration for the cache load driver.

Settings come from defaults, then LOAD_* environment variables, then
whatever the caller overrides (usually CLI flags).
"""

import os
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator


class AbortPolicy(str, Enum):
    """How strictly a failed check is treated"""
    LENIENT = "lenient"  # only critical transport errors abort
    STRICT = "strict"    # any failed check aborts as well


class IdentifierMode(str, Enum):
    CYCLIC = "cyclic"
    RANDOM = "random"


class LoadConfig(BaseModel):
    """Everything one load run needs to know"""
    base_url: str = "http://nginx:8889"
    host_header: Optional[str] = "rickandmortyapi.com"
    resource_path: str = "/api/character"
    image_ext: str = "jpeg"
    health_path: str = "/health"
    health_check: bool = True
    follow_redirects: bool = True

    pool_size: int = Field(default=826, ge=1)
    iterations: Optional[int] = Field(default=1652, ge=0)
    duration: Optional[float] = Field(default=None, gt=0)
    virtual_streams: int = Field(default=1, ge=1)
    identifier_mode: IdentifierMode = IdentifierMode.CYCLIC
    seed: Optional[int] = None

    request_timeout: float = Field(default=30.0, gt=0)
    health_timeout: float = Field(default=10.0, gt=0)
    request_delay: float = Field(default=1.0, ge=0)
    iteration_delay: float = Field(default=1.0, ge=0)

    expected_status: int = Field(default=200, ge=100, le=599)
    cache_header: str = "X-Cache"
    abort_policy: AbortPolicy = AbortPolicy.LENIENT

    max_failed_rate: float = Field(default=0.01, ge=0, le=1)
    min_check_rate: float = Field(default=0.95, ge=0, le=1)
    max_p95_ms: float = Field(default=2000.0, gt=0)

    @model_validator(mode="after")
    def _require_bound(self):
        if self.iterations is None and self.duration is None:
            raise ValueError("either iterations or duration must be set")
        return self

    @property
    def root(self) -> str:
        return self.base_url.rstrip("/")

    def json_url(self, identifier: int) -> str:
        return f"{self.root}{self.resource_path}/{identifier}"

    def image_url(self, identifier: int) -> str:
        return f"{self.root}{self.resource_path}/avatar/{identifier}.{self.image_ext}"

    def health_url(self) -> str:
        return f"{self.root}{self.health_path}"

    def routing_headers(self) -> Dict[str, str]:
        if self.host_header:
            return {"Host": self.host_header}
        return {}

    @classmethod
    def from_env(cls, environ=None, **overrides: Any) -> "LoadConfig":
        """
        Build a config from LOAD_* variables.

        Args:
            environ: Mapping to read instead of os.environ
            overrides: Values that win over the environment
        """
        env = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for field_name, var in ENV_VARS.items():
            raw = env.get(var)
            if raw is None or raw == "":
                continue
            values[field_name] = _parse_env_value(field_name, raw)
        values.update(overrides)
        return cls(**values)


ENV_VARS = {
    "base_url": "LOAD_BASE_URL",
    "host_header": "LOAD_HOST_HEADER",
    "resource_path": "LOAD_RESOURCE_PATH",
    "image_ext": "LOAD_IMAGE_EXT",
    "health_path": "LOAD_HEALTH_PATH",
    "health_check": "LOAD_HEALTH_CHECK",
    "follow_redirects": "LOAD_FOLLOW_REDIRECTS",
    "pool_size": "LOAD_POOL_SIZE",
    "iterations": "LOAD_ITERATIONS",
    "duration": "LOAD_DURATION",
    "virtual_streams": "LOAD_STREAMS",
    "identifier_mode": "LOAD_ID_MODE",
    "seed": "LOAD_SEED",
    "request_timeout": "LOAD_REQUEST_TIMEOUT",
    "health_timeout": "LOAD_HEALTH_TIMEOUT",
    "request_delay": "LOAD_REQUEST_DELAY",
    "iteration_delay": "LOAD_ITERATION_DELAY",
    "expected_status": "LOAD_EXPECTED_STATUS",
    "cache_header": "LOAD_CACHE_HEADER",
    "abort_policy": "LOAD_ABORT_POLICY",
    "max_failed_rate": "LOAD_MAX_FAILED_RATE",
    "min_check_rate": "LOAD_MIN_CHECK_RATE",
    "max_p95_ms": "LOAD_MAX_P95_MS",
}


def _parse_env_value(field_name: str, raw: str) -> Any:
    # Booleans need explicit handling, everything else pydantic coerces
    if field_name in ("health_check", "follow_redirects"):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if field_name in ("iterations", "duration", "seed") and raw.strip().lower() == "none":
        return None
    return raw
