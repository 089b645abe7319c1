import ipaddress

import dns.edns
import dns.message
import dns.flags

from dnsrelay.ecs import ecs_from_msg, set_ecs


def _query():
    return dns.message.make_query("example.org.", "A", use_edns=False)


def test_no_edns_means_no_ecs():
    assert ecs_from_msg(_query()) == (None, 0)


def test_edns_without_ecs():
    msg = dns.message.make_query("example.org.", "A", use_edns=0)
    assert ecs_from_msg(msg) == (None, 0)


def test_set_ecs_ipv4():
    msg = _query()
    subnet = set_ecs(msg, "1.2.3.4", 0)
    assert subnet == ipaddress.ip_network("1.2.3.0/24")
    assert msg.edns == 0
    assert msg.payload == 4096


def test_set_ecs_ipv6_mask_length():
    msg = _query()
    subnet = set_ecs(msg, "2001:db8:1:2:3::1", 0)
    assert subnet.prefixlen == 56
    assert ipaddress.ip_address("2001:db8:1:2:3::1") in subnet


def test_set_ecs_mapped_address_is_ipv4():
    subnet = set_ecs(_query(), "::ffff:10.20.30.40", 0)
    assert subnet.version == 4
    assert subnet.prefixlen == 24


def test_round_trip_through_wire():
    msg = _query()
    subnet = set_ecs(msg, "192.0.2.55", 7)
    parsed = dns.message.from_wire(msg.to_wire())
    assert ecs_from_msg(parsed) == (subnet, 7)


def test_existing_opt_is_extended():
    msg = dns.message.make_query("example.org.", "A", use_edns=0, want_dnssec=True)
    cookie = dns.edns.GenericOption(dns.edns.OptionType.COOKIE, b"\x01" * 8)
    msg.use_edns(edns=0, ednsflags=msg.ednsflags, payload=1232, options=[cookie])

    subnet = set_ecs(msg, "198.51.100.9", 0)

    assert len(msg.options) == 2
    assert msg.options[0] == cookie
    assert msg.payload == 1232
    assert msg.ednsflags & dns.flags.DO
    assert ecs_from_msg(msg) == (subnet, 0)