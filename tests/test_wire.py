import io
import ipaddress

import dns.message
import dns.rdata
import dns.rdataclass
import dns.rdatatype
import dns.rrset
import pytest

from dnsrelay.wire import (
    MessageTooLargeError,
    add_prefix,
    answer_addrs,
    ip_from_rr,
    read_prefixed,
    sort_addrs,
    write_prefixed,
)


def _rdata(rdtype, text):
    return dns.rdata.from_text(dns.rdataclass.IN, rdtype, text)


def test_add_prefix_pins_length():
    assert add_prefix(b"abc") == b"\x00\x03abc"


def test_add_prefix_empty():
    assert add_prefix(b"") == b"\x00\x00"


def test_add_prefix_too_large():
    with pytest.raises(MessageTooLargeError):
        add_prefix(b"x" * 65536)


def test_ip_from_rr_a():
    assert ip_from_rr(_rdata(dns.rdatatype.A, "1.2.3.4")) == ipaddress.ip_address("1.2.3.4")


def test_ip_from_rr_aaaa():
    rr = _rdata(dns.rdatatype.AAAA, "2001:db8::1")
    assert ip_from_rr(rr) == ipaddress.ip_address("2001:db8::1")


def test_ip_from_rr_other_type():
    assert ip_from_rr(_rdata(dns.rdatatype.CNAME, "target.example.")) is None


def test_answer_addrs_skips_non_address_records():
    answer = [
        dns.rrset.from_text("host.example.", 10, "IN", "CNAME", "other.example."),
        dns.rrset.from_text("other.example.", 10, "IN", "A", "1.2.3.4", "5.6.7.8"),
        dns.rrset.from_text("other.example.", 10, "IN", "AAAA", "::1"),
    ]
    assert answer_addrs(answer) == [
        ipaddress.ip_address("1.2.3.4"),
        ipaddress.ip_address("5.6.7.8"),
        ipaddress.ip_address("::1"),
    ]


def test_sort_addrs_prefers_family_stably():
    addrs = [ipaddress.ip_address(a) for a in ("::1", "1.1.1.1", "::2", "2.2.2.2")]
    v4_first = sort_addrs(addrs, prefer_ipv6=False)
    v6_first = sort_addrs(addrs, prefer_ipv6=True)
    assert v4_first == [addrs[1], addrs[3], addrs[0], addrs[2]]
    assert v6_first == [addrs[0], addrs[2], addrs[1], addrs[3]]


def test_prefixed_round_trip_with_dns_message():
    wire = dns.message.make_query("example.org.", "A").to_wire()
    buf = io.BytesIO()
    write_prefixed(wire, buf)
    buf.seek(0)
    assert read_prefixed(buf) == wire
    assert buf.read() == b""


def test_read_prefixed_several_messages():
    buf = io.BytesIO(add_prefix(b"one") + add_prefix(b"second"))
    assert read_prefixed(buf) == b"one"
    assert read_prefixed(buf) == b"second"


def test_read_prefixed_truncated_body():
    with pytest.raises(EOFError):
        read_prefixed(io.BytesIO(b"\x00\x05ab"))


def test_read_prefixed_missing_length():
    with pytest.raises(EOFError):
        read_prefixed(io.BytesIO(b"\x00"))


def test_write_prefixed_too_large():
    with pytest.raises(MessageTooLargeError):
        write_prefixed(b"x" * 70000, io.BytesIO())