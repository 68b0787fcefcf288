from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Callable, Dict, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Per-host request spacing shared by every adapter.

    Keeps the instant of the last (or next reserved) request for each
    hostname.  The slot is reserved under the lock, so two threads hitting the
    same host never both see a stale "time since last request".
    """

    def __init__(
        self,
        min_interval_s: float = 0.5,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval_s = min_interval_s
        self._clock = clock
        self._sleep = sleep
        self._last_request: Dict[str, float] = {}
        self._lock = Lock()

    @staticmethod
    def host_of(url_or_host: str) -> str:
        if "://" in url_or_host:
            return urlsplit(url_or_host).hostname or url_or_host
        return url_or_host

    def wait(self, url_or_host: str) -> float:
        """Block until a request to this host is allowed; return the delay."""
        host = self.host_of(url_or_host)
        with self._lock:
            now = self._clock()
            last = self._last_request.get(host)
            slot = now if last is None else max(now, last + self.min_interval_s)
            self._last_request[host] = slot

        delay = slot - now
        if delay > 0:
            logger.debug("Rate limit %s: waiting %.2fs", host, delay)
            self._sleep(delay)
        return delay

    def last_request(self, url_or_host: str) -> Optional[float]:
        return self._last_request.get(self.host_of(url_or_host))


__all__ = ["RateLimiter"]
