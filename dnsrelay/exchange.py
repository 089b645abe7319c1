"""Load-balanced exchange of requests with upstreams weighted by round-trip time."""

from __future__ import annotations

import logging
import random
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

import dns.message

logger = logging.getLogger(__name__)

# The round-trip time charged to an upstream that failed to answer, in seconds.
DEFAULT_TIMEOUT = 10.0


class AllUpstreamsFailedError(Exception):
    """Raised when none of the upstreams managed to answer a request."""

    def __init__(self, errors: Iterable[BaseException]) -> None:
        self.errors = list(errors)
        joined = "\n".join(str(e) for e in self.errors)
        super().__init__(f"all upstreams failed to exchange request: {joined}")


def _microseconds(seconds: float) -> int:
    return int(seconds * 1_000_000)


@dataclass(frozen=True)
class _RTTStats:
    """The sum of round-trip times in microseconds and the number of requests."""

    rtt_sum: float = 0.0
    req_num: float = 0.0

    def update(self, rtt: float) -> _RTTStats:
        return _RTTStats(self.rtt_sum + _microseconds(rtt), self.req_num + 1)


class LoadBalancer:
    """Picks upstreams at random, preferring those that answer faster."""

    def __init__(
        self,
        rng: random.Random | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._rng = rng if rng is not None else random.Random()
        self._clock = clock if clock is not None else time.monotonic
        self._stats: dict[str, _RTTStats] = {}
        self._lock = threading.Lock()

    def exchange(
        self, req: dns.message.Message, upstreams: Sequence[Any]
    ) -> tuple[dns.message.Message, Any]:
        """Resolve req with one of upstreams.

        Returns the response and the upstream that gave it.  A single upstream
        is asked directly and its error is raised as is; with several, each is
        tried at most once, and AllUpstreamsFailedError is raised if all fail.
        """
        ups = list(upstreams)
        if len(ups) == 1:
            u = ups[0]
            resp, _ = self._exchange(u, req)
            return resp, u

        weights = self.calc_weights(ups)
        remaining = list(range(len(ups)))
        errors: list[BaseException] = []
        while remaining:
            u = ups[self._take(remaining, weights)]
            try:
                resp, elapsed = self._exchange(u, req)
            except Exception as err:  # noqa: BLE001 - collected and re-raised
                errors.append(err)
                self.update_rtt(u.address, DEFAULT_TIMEOUT)
                continue

            self.update_rtt(u.address, elapsed)
            return resp, u

        raise AllUpstreamsFailedError(errors)

    def _take(self, remaining: list[int], weights: Sequence[float]) -> int:
        """Remove and return an index from remaining, chosen by weight."""
        total = sum(weights[i] for i in remaining)
        point = self._rng.random() * total
        chosen = remaining[-1]
        cumulative = 0.0
        for i in remaining:
            cumulative += weights[i]
            if point < cumulative:
                chosen = i
                break
        remaining.remove(chosen)
        return chosen

    def _exchange(self, u: Any, req: dns.message.Message) -> tuple[Any, float]:
        question = req.question[0] if req.question else None
        start = self._clock()
        try:
            resp = u.exchange(req)
        except Exception as err:
            logger.error(
                "exchange failed: upstream %s, question %s, duration %.6fs: %s",
                u.address,
                question,
                self._clock() - start,
                err,
            )
            raise
        duration = self._clock() - start
        logger.debug(
            "exchange successfully finished: upstream %s, question %s, duration %.6fs",
            u.address,
            question,
            duration,
        )
        return resp, duration

    def calc_weights(self, upstreams: Iterable[Any]) -> list[float]:
        """Return the weight of each upstream: the inverse of its mean RTT."""
        with self._lock:
            weights = []
            for u in upstreams:
                stats = self._stats.get(u.address, _RTTStats())
                if stats.rtt_sum == 0 or stats.req_num == 0:
                    weights.append(1.0)
                else:
                    weights.append(1 / (stats.rtt_sum / stats.req_num))
            return weights

    def update_rtt(self, address: str, rtt: float) -> None:
        """Record a round-trip time, in seconds, for the upstream at address."""
        with self._lock:
            self._stats[address] = self._stats.get(address, _RTTStats()).update(rtt)