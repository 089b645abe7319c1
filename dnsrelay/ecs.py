"""EDNS Client Subnet option handling."""

from __future__ import annotations

import ipaddress

import dns.edns
import dns.message

IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network

# Default source prefix lengths for the ECS option.  The IPv6 length is a
# reasonable minimum, since some public resolvers refuse longer masks.
DEFAULT_ECS_V4 = 24
DEFAULT_ECS_V6 = 56

_ECS_PAYLOAD = 4096


def ecs_from_msg(msg: dns.message.Message) -> tuple[IPNetwork | None, int]:
    """Return the ECS subnet of msg and its scope, or (None, 0) if absent."""
    if msg.edns < 0:
        return None, 0

    for option in msg.options:
        if not isinstance(option, dns.edns.ECSOption):
            continue
        if option.family not in (1, 2):
            continue
        subnet = ipaddress.ip_network(f"{option.address}/{option.srclen}", strict=False)
        return subnet, option.scopelen

    return None, 0


def set_ecs(msg: dns.message.Message, ip, scope: int) -> IPNetwork:
    """Add an ECS option for ip to msg and return the masked subnet."""
    addr = ipaddress.ip_address(ip)
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped

    prefix_len = DEFAULT_ECS_V4 if addr.version == 4 else DEFAULT_ECS_V6
    subnet = ipaddress.ip_network(f"{addr}/{prefix_len}", strict=False)
    option = dns.edns.ECSOption(str(subnet.network_address), prefix_len, scope)

    # Servers may reply with FORMERR to several OPT records, so extend the
    # existing one if present.
    if msg.edns >= 0:
        msg.use_edns(
            edns=msg.edns,
            ednsflags=msg.ednsflags,
            payload=msg.payload,
            options=[*msg.options, option],
        )
    else:
        msg.use_edns(edns=0, payload=_ECS_PAYLOAD, options=[option])

    return subnet