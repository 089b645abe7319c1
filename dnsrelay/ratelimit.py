"""Per-subnet request rate limiting."""

from __future__ import annotations

import ipaddress
import threading
import time
from collections import deque
from collections.abc import Iterable

# Rate limiting buckets live for this long before being recreated.
_BUCKET_TTL = 3600.0

# The window within which at most limit requests are allowed.
_INTERVAL = 1.0


class _Bucket:
    """A sliding window of the latest request times."""

    def __init__(self, limit: int, created: float) -> None:
        self.created = created
        self.times: deque[float] = deque()
        self.limit = limit

    def try_take(self, now: float) -> bool:
        if len(self.times) < self.limit:
            self.times.append(now)
            return True
        if now - self.times[0] < _INTERVAL:
            return False
        self.times.popleft()
        self.times.append(now)
        return True


class RateLimiter:
    """Limits requests per second from each client subnet."""

    def __init__(
        self,
        limit: int,
        subnet_len_ipv4: int,
        subnet_len_ipv6: int,
        whitelist: Iterable = (),
    ) -> None:
        self.limit = limit
        self.subnet_len_ipv4 = subnet_len_ipv4
        self.subnet_len_ipv6 = subnet_len_ipv6
        self.whitelist = frozenset(ipaddress.ip_address(a) for a in whitelist)
        self._buckets: dict[str, _Bucket] = {}
        self._lock = threading.Lock()
        self._last_purge = time.monotonic()

    def _bucket(self, key: str, now: float) -> _Bucket:
        if now - self._last_purge >= _BUCKET_TTL:
            self._buckets = {
                k: b for k, b in self._buckets.items() if now - b.created < _BUCKET_TTL
            }
            self._last_purge = now

        bucket = self._buckets.get(key)
        if bucket is None or now - bucket.created >= _BUCKET_TTL:
            bucket = _Bucket(self.limit, now)
            self._buckets[key] = bucket
        return bucket

    def is_ratelimited(self, addr) -> bool:
        """Report whether a request from addr exceeds the limit."""
        if self.limit <= 0:
            return False

        ip = ipaddress.ip_address(addr)
        if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped

        if ip in self.whitelist:
            return False

        prefix_len = self.subnet_len_ipv4 if ip.version == 4 else self.subnet_len_ipv6
        key = str(ipaddress.ip_network(f"{ip}/{prefix_len}", strict=False).network_address)

        with self._lock:
            now = time.monotonic()
            return not self._bucket(key, now).try_take(now)