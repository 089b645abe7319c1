"""Reversed-address (ARPA) domain parsing and private PTR filtering."""

from __future__ import annotations

import ipaddress
import string
from collections.abc import Callable, Iterable

import dns.message
import dns.rdatatype

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network

_V4_SUFFIX = "in-addr.arpa"
_V6_SUFFIX = "ip6.arpa"

_V4_LABELS = 4
_V6_LABELS = 32

_MAX_NAME_LEN = 253
_MAX_LABEL_LEN = 63

_ARPA_TYPES = frozenset({dns.rdatatype.PTR, dns.rdatatype.SOA, dns.rdatatype.NS})


def _validate_domain(domain: str) -> None:
    if not domain:
        raise ValueError("domain name is empty")
    if len(domain) > _MAX_NAME_LEN:
        raise ValueError(f"domain name {domain!r} is too long")
    for label in domain.split("."):
        if not label:
            raise ValueError(f"domain name {domain!r} has an empty label")
        if len(label) > _MAX_LABEL_LEN:
            raise ValueError(f"label {label!r} is too long")


def _split_arpa(name: str) -> tuple[list[str], int]:
    domain = name[:-1] if name.endswith(".") else name
    domain = domain.lower()
    _validate_domain(domain)

    for suffix, version in ((_V4_SUFFIX, 4), (_V6_SUFFIX, 6)):
        if domain == suffix:
            return [], version
        if domain.endswith("." + suffix):
            return domain[: -len(suffix) - 1].split("."), version

    raise ValueError(f"{name!r} is not a reversed address domain")


def _valid_v4_label(label: str) -> bool:
    if not (label.isascii() and label.isdigit()):
        return False
    if len(label) > 1 and label.startswith("0"):
        return False
    return int(label) <= 255


def _valid_v6_label(label: str) -> bool:
    return len(label) == 1 and label in string.hexdigits


def _build_network(parts: list[str], version: int) -> IPNetwork:
    if version == 4:
        octets = [int(p) for p in parts] + [0] * (_V4_LABELS - len(parts))
        addr = ipaddress.IPv4Address(bytes(octets))
        return ipaddress.IPv4Network((addr, 8 * len(parts)))

    nibbles = "".join(parts).ljust(_V6_LABELS, "0")
    addr = ipaddress.IPv6Address(int(nibbles, 16))
    return ipaddress.IPv6Network((addr, 4 * len(parts)))


def extract_reversed_addr(name: str) -> IPNetwork:
    """Return the subnet encoded in an ARPA domain name.

    Labels to the left of the encoded address are treated as a subdomain and
    ignored.  A bare ARPA zone yields a zero-length prefix.
    """
    labels, version = _split_arpa(name)
    is_valid = _valid_v4_label if version == 4 else _valid_v6_label
    max_labels = _V4_LABELS if version == 4 else _V6_LABELS

    parts: list[str] = []
    for label in reversed(labels):
        if len(parts) == max_labels or not is_valid(label):
            break
        parts.append(label)

    return _build_network(parts, version)


def ip_from_reversed_addr(name: str) -> IPAddress:
    """Return the address encoded in a full reversed address domain name."""
    labels, version = _split_arpa(name)
    is_valid = _valid_v4_label if version == 4 else _valid_v6_label
    max_labels = _V4_LABELS if version == 4 else _V6_LABELS

    if len(labels) != max_labels or not all(is_valid(label) for label in labels):
        raise ValueError(f"{name!r} is not a full reversed ip address")

    return _build_network(list(reversed(labels)), version).network_address


def _contains(private_nets, addr: IPAddress) -> bool:
    if callable(private_nets):
        return bool(private_nets(addr))
    return any(
        addr in net
        for net in private_nets
        if net.version == addr.version
    )


def is_forbidden_arpa(
    msg: dns.message.Message,
    private_nets: Callable[[IPAddress], bool] | Iterable[IPNetwork],
    is_private_client: bool,
) -> tuple[bool, IPNetwork | None]:
    """Check a PTR, SOA or NS request for a private address.

    Returns whether the request must be refused, which is when it asks about a
    private address and the client is not private, and the requested private
    subnet, or None if the request is not about a private address.
    """
    if not msg.question:
        return False, None

    question = msg.question[0]
    if question.rdtype not in _ARPA_TYPES:
        return False, None

    try:
        requested = extract_reversed_addr(question.name.to_text())
    except ValueError:
        return False, None

    if _contains(private_nets, requested.network_address):
        return not is_private_client, requested

    return False, None