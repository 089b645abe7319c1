# dnsrelay

Building blocks for a forwarding DNS proxy, built on top of `dnspython`.

The package gives you the pieces that sit between a listener and a set of
upstream resolvers. An *upstream* here is any object that has an `address`
attribute, an `exchange(req)` method that returns a `dns.message.Message`,
and a `close()` method.

## Modules

### `dnsrelay.upstreams`: upstream routing

`parse_upstreams_config(lines, factory)` reads configuration lines and
returns an `UpstreamConfig`. `factory` builds an upstream from its address,
and each distinct address is built only once. Empty lines and lines that
start with `#` are skipped. The line syntax is:

- `1.2.3.4`: a default upstream.
- `[/domain1/domain2/]1.2.3.4 5.6.7.8`: upstreams reserved for these domains
  and their subdomains. An empty domain (`[//]...`) stands for names that
  have a single label.
- `[/*.domain/]1.2.3.4`: upstreams for the subdomains of `domain` only.
- `[/domain/]#`: excludes `domain` from the reserved upstreams, so it goes
  to the defaults.

If a line is invalid, `UpstreamsConfigError` is raised. Its `errors` hold a
`ParseError` (with `idx` and `err`) for each bad line, and its `config`
holds the partly filled configuration. `split_config_line(line)` splits one
line into its upstream addresses and its domains.

`UpstreamConfig.upstreams_for_domain(fqdn)` returns the upstreams for a
name, and the most specific domain wins. `UpstreamConfig.upstreams_for_ds(fqdn)`
does the same for DS queries, matching the name without its first label.
`UpstreamConfig.validate()` raises `NoUpstreamsError` when nothing is
configured, and `ValueError` when there are no default upstreams.
`UpstreamConfig.close()` closes every upstream and raises
`UpstreamsConfigError` if any of them fail.

`validate_private_config(config, private_subnets)` checks a configuration
that is meant for private reverse DNS. Every reserved domain must be a
reversed address inside a private subnet. `private_subnets` is either a
predicate on addresses or an iterable of networks.

### `dnsrelay.exchange`: load balancing

`LoadBalancer(rng=None, clock=None)` picks upstreams at random, weighted by
the inverse of their mean round-trip time.

- `exchange(req, upstreams)` returns `(response, upstream)`. With a single
  upstream, that upstream is asked directly and its error is raised as is.
  With several, each is tried at most once, and `AllUpstreamsFailedError` is
  raised if all of them fail. A failed upstream is charged
  `DEFAULT_TIMEOUT` (10 seconds) as its round-trip time.
- `calc_weights(upstreams)` returns the weights.
- `update_rtt(address, rtt)` records a round-trip time in seconds.

### `dnsrelay.ecs`: EDNS Client Subnet

- `ecs_from_msg(msg)` returns the ECS subnet of a message and its scope, or
  `(None, 0)`.
- `set_ecs(msg, ip, scope)` adds an ECS option for `ip`, masked to /24 for
  IPv4 or /56 for IPv6. If the message already has an OPT record, the option
  goes into it. The function returns the masked subnet.

### `dnsrelay.ratelimit`: rate limiting

`RateLimiter(limit, subnet_len_ipv4, subnet_len_ipv6, whitelist=())` allows
at most `limit` requests per second from each client subnet.
`is_ratelimited(addr)` reports whether a request from `addr` goes over the
limit. Whitelisted addresses are never limited, and a `limit` of 0 or less
turns the limiter off.

### `dnsrelay.recursion`: recursion detection

`RecursionDetector(ttl=1.0, max_count=1000)` remembers the requests the
proxy has forwarded, keyed by `msg_to_signature(msg)`, which is built from
the message ID, the query type and the name. `add(msg)` records a request
and `check(msg)` reports whether the same request was sent within `ttl`
seconds. `clear()` forgets everything. The oldest entries are dropped once
there are more than `max_count` of them.

### `dnsrelay.arpa`: reverse DNS names

- `extract_reversed_addr(name)` returns the subnet encoded in an
  `in-addr.arpa` or `ip6.arpa` name.
- `ip_from_reversed_addr(name)` returns the full address encoded in such a
  name.
- `is_forbidden_arpa(msg, private_nets, is_private_client)` checks a PTR,
  SOA or NS request. It returns `(forbidden, subnet)`, where `subnet` is the
  requested private subnet or `None`. `forbidden` is true when a client that
  is not private asks about a private address.

### `dnsrelay.doh`: DNS-over-HTTPS helpers

- `parse_doh_request(method, query, content_type, body)` returns the DNS
  message carried by a GET (`dns` query parameter, unpadded base64url) or by
  a POST (`application/dns-message` body). Otherwise it raises
  `DoHRequestError`, whose `status` is 400, 405 or 415.
- `real_ip_from_headers(headers)` reads the client address from
  `CF-Connecting-IP`, `True-Client-IP`, `X-Real-IP` or the first entry of
  `X-Forwarded-For`, in that order.
- `remote_addr(remote, headers)` returns the client's `(ip, port)` and the
  address of the proxy it came through, or `None` when there is no proxy.
- `matches_userinfo(user, password, req_user, req_password)` compares
  basic-auth credentials.

### `dnsrelay.wire` and `dnsrelay.retry`: transport helpers

- `add_prefix`, `read_prefixed(reader)` and `write_prefixed(data, writer)`
  handle the 2-byte length prefix that TCP uses. They raise
  `MessageTooLargeError` for messages over 65535 bytes.
- `ip_from_rr`, `answer_addrs` and `sort_addrs(addrs, prefer_ipv6)` pull
  addresses out of A and AAAA answers and order them by family.
- `bind_with_retry(bind, retries=0, interval=0.0)` calls `bind` until it
  succeeds. If every attempt fails, it raises the error of the first attempt.
- `is_epipe(err)` reports whether an error, or any error it was raised from,
  is a broken pipe.

## What the package does not do

It runs no server and opens no sockets. There are no UDP, TCP, TLS, HTTPS or
QUIC listeners, and no command to start. It has no upstream clients either:
the objects that talk to real resolvers are yours to supply. It has no
response cache, no DNS64 synthesis and no per-query statistics.

## Installation

```
pip install .
```

To run the tests as well:

```
pip install ".[test]"
pytest
```

## Example

```python
import dns.message

from dnsrelay.exchange import LoadBalancer
from dnsrelay.upstreams import parse_upstreams_config


class StaticUpstream:
    """Answers every request with an empty reply."""

    def __init__(self, address):
        self.address = address

    def exchange(self, req):
        return dns.message.make_response(req)

    def close(self):
        pass


config = parse_upstreams_config(
    [
        "[/host.com/]1.2.3.4",
        "[/www.host.com/]2.3.4.5",
        "[/maps.host.com/news.host.com/]#",
        "3.4.5.6",
    ],
    StaticUpstream,
)

[u.address for u in config.upstreams_for_domain("mail.host.com.")]   # ['1.2.3.4']
[u.address for u in config.upstreams_for_domain("a.www.host.com.")]  # ['2.3.4.5']
[u.address for u in config.upstreams_for_domain("maps.host.com.")]   # ['3.4.5.6']

req = dns.message.make_query("mail.host.com.", "A")
resp, used = LoadBalancer().exchange(req, config.upstreams_for_domain("mail.host.com."))
used.address  # '1.2.3.4'
```