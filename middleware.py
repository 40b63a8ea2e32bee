"""
Middleware that reports a cache status header the way the nginx proxy does.
"""

import logging
import threading
from typing import Set

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class SeenPaths:
    """Remembers which paths were already served. Holds no response content."""

    def __init__(self):
        self._paths: Set[str] = set()
        self._lock = threading.Lock()

    def mark(self, path: str) -> bool:
        """Record path, returning True if it had been seen before"""
        with self._lock:
            if path in self._paths:
                return True
            self._paths.add(path)
            return False

    def clear(self) -> int:
        with self._lock:
            count = len(self._paths)
            self._paths.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)


class CacheStatusMiddleware(BaseHTTPMiddleware):
    """Stamp MISS on the first successful GET of a path and HIT afterwards."""

    def __init__(self, app, seen: SeenPaths, header_name: str = "X-Cache", prefix: str = "/api/"):
        """
        Initialize the middleware.

        Args:
            app: The FastAPI application
            seen: Shared record of served paths
            header_name: Response header to set
            prefix: Only paths under this prefix get the header
        """
        super().__init__(app)
        self.seen = seen
        self.header_name = header_name
        self.prefix = prefix

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        path = request.url.path
        if request.method != "GET" or not path.startswith(self.prefix) or response.status_code != 200:
            return response

        status = "HIT" if self.seen.mark(path) else "MISS"
        response.headers[self.header_name] = status
        logger.debug(f"{path} -> {self.header_name}: {status}")
        return response
