# rate_limit.py (per-client request limits, checked before any expensive work)

import threading
import time


class RateLimiter:
    """Capability checked by every endpoint before doing expensive work."""

    def allow(self, client_key: str) -> bool:
        raise NotImplementedError


class SlidingWindowRateLimiter(RateLimiter):
    """At most ``max_requests`` per ``window`` seconds for each client key.

    Old timestamps are pruned lazily when a key is checked, and once per
    window every idle client is dropped. This is abuse deterrence for a
    single process, not an exact limiter.
    """

    def __init__(self, max_requests=10, window=60.0, clock=time.monotonic):
        self.max_requests = max_requests
        self.window = window
        self.clock = clock
        self._requests = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._requests)

    def _recent(self, client_key, now):
        return [t for t in self._requests.get(client_key, ()) if now - t < self.window]

    def _sweep(self, now):
        for client_key in list(self._requests):
            recent = self._recent(client_key, now)
            if recent:
                self._requests[client_key] = recent
            else:
                del self._requests[client_key]
        self._last_sweep = now

    def allow(self, client_key):
        now = self.clock()
        with self._lock:
            if now - self._last_sweep >= self.window:
                self._sweep(now)
            recent = self._recent(client_key, now)
            if len(recent) >= self.max_requests:
                self._requests[client_key] = recent
                return False
            recent.append(now)
            self._requests[client_key] = recent
            return True

    def reset(self):
        with self._lock:
            self._requests.clear()
