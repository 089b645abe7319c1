"""Wire-level helpers: length-prefixed framing and address extraction."""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable
from typing import BinaryIO

import dns.rdatatype

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address

# The largest DNS message that fits a 2-byte length prefix.
MAX_MSG_SIZE = 65535


class MessageTooLargeError(ValueError):
    """Raised when a DNS message does not fit a 2-byte length prefix."""

    def __init__(self, size: int) -> None:
        super().__init__(f"dns message is too large: {size} bytes")
        self.size = size


def add_prefix(data: bytes) -> bytes:
    """Return data preceded by its length as a 2-byte big-endian integer."""
    if len(data) > MAX_MSG_SIZE:
        raise MessageTooLargeError(len(data))
    return len(data).to_bytes(2, "big") + bytes(data)


def ip_from_rr(rr) -> IPAddress | None:
    """Return the address held by an A or AAAA rdata, or None for other types."""
    if rr.rdtype not in (dns.rdatatype.A, dns.rdatatype.AAAA):
        return None
    try:
        return ipaddress.ip_address(rr.address)
    except ValueError:
        return None


def answer_addrs(answer: Iterable) -> list[IPAddress]:
    """Collect the addresses of all A and AAAA records in an answer section."""
    return [
        addr
        for rrset in answer
        for rdata in rrset
        if (addr := ip_from_rr(rdata)) is not None
    ]


def sort_addrs(addrs: Iterable[IPAddress], prefer_ipv6: bool) -> list[IPAddress]:
    """Stably sort addresses so that the preferred family comes first."""
    preferred = 6 if prefer_ipv6 else 4
    return sorted(addrs, key=lambda addr: addr.version != preferred)


def _read_exact(reader: BinaryIO, size: int, what: str) -> bytes:
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            raise EOFError(f"reading {what}: got {size - remaining} of {size} bytes")
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def read_prefixed(reader: BinaryIO) -> bytes:
    """Read one DNS message preceded by a 2-byte length from reader."""
    length = int.from_bytes(_read_exact(reader, 2, "len"), "big")
    if length > MAX_MSG_SIZE:
        raise MessageTooLargeError(length)
    return _read_exact(reader, length, "msg")


def write_prefixed(data: bytes, writer: BinaryIO) -> None:
    """Write data to writer preceded by its 2-byte length."""
    writer.write(add_prefix(data))