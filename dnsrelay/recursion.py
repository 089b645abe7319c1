"""Detection of requests that loop back through the proxy."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict

import dns.message

# The maximum length of a domain name in its textual form.
MAX_DOMAIN_NAME_LEN = 253

# Size of the fixed part of a signature: the message ID and the query type.
_HEADER_LEN = 4

# The time a sent request is remembered for, in seconds.
RECURSION_TTL = 1.0

# The maximum number of remembered requests.
CACHED_RECURRENT_REQ_NUM = 1000


def msg_to_signature(msg: dns.message.Message) -> bytes:
    """Return the signature of msg built from its ID and first question."""
    if not msg.question:
        raise ValueError("message has no question")

    question = msg.question[0]
    name = question.name.to_text().encode("ascii", errors="replace")
    padded = name[:MAX_DOMAIN_NAME_LEN].ljust(MAX_DOMAIN_NAME_LEN, b"\x00")

    return (
        msg.id.to_bytes(2, "big")
        + int(question.rdtype).to_bytes(2, "big")
        + padded
    )


class RecursionDetector:
    """Remembers recently forwarded requests to detect forwarding loops."""

    def __init__(
        self,
        ttl: float = RECURSION_TTL,
        max_count: int = CACHED_RECURRENT_REQ_NUM,
    ) -> None:
        self.ttl = ttl
        self.max_count = max_count
        self._recent: OrderedDict[bytes, float] = OrderedDict()
        self._lock = threading.Lock()
        self._clock = time.monotonic

    def check(self, msg: dns.message.Message) -> bool:
        """Report whether msg was recently sent by the proxy itself."""
        if not msg.question:
            return False

        key = msg_to_signature(msg)
        with self._lock:
            expire = self._recent.get(key)
            if expire is None:
                return False
            self._recent.move_to_end(key)

        return self._clock() < expire

    def add(self, msg: dns.message.Message) -> None:
        """Remember msg if it has a question."""
        now = self._clock()
        if not msg.question:
            return

        key = msg_to_signature(msg)
        with self._lock:
            self._recent[key] = now + self.ttl
            self._recent.move_to_end(key)
            while self.max_count > 0 and len(self._recent) > self.max_count:
                self._recent.popitem(last=False)

    def clear(self) -> None:
        """Forget all remembered requests."""
        with self._lock:
            self._recent.clear()