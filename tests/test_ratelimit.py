from unittest import mock

from dnsrelay.ratelimit import RateLimiter


def _limiter(limit=2, whitelist=()):
    return RateLimiter(limit, 24, 64, whitelist)


def test_disabled_limit_never_limits():
    limiter = _limiter(limit=0)
    assert not any(limiter.is_ratelimited("192.0.2.1") for _ in range(50))


def test_limit_is_enforced():
    limiter = _limiter(limit=2)
    with mock.patch("time.monotonic", return_value=1000.0):
        results = [limiter.is_ratelimited("192.0.2.1") for _ in range(3)]
    assert results == [False, False, True]


def test_whitelisted_address_is_not_limited():
    limiter = _limiter(limit=1, whitelist=["192.0.2.1"])
    assert not any(limiter.is_ratelimited("192.0.2.1") for _ in range(10))


def test_same_subnet_shares_bucket():
    limiter = _limiter(limit=1)
    with mock.patch("time.monotonic", return_value=1000.0):
        assert limiter.is_ratelimited("192.0.2.1") is False
        assert limiter.is_ratelimited("192.0.2.200") is True
        assert limiter.is_ratelimited("198.51.100.1") is False


def test_ipv6_subnet_length():
    limiter = _limiter(limit=1)
    with mock.patch("time.monotonic", return_value=1000.0):
        assert limiter.is_ratelimited("2001:db8::1") is False
        assert limiter.is_ratelimited("2001:db8::ffff:1") is True
        assert limiter.is_ratelimited("2001:db8:0:1::1") is False


def test_mapped_address_counts_as_ipv4():
    limiter = _limiter(limit=1)
    with mock.patch("time.monotonic", return_value=1000.0):
        assert limiter.is_ratelimited("::ffff:192.0.2.1") is False
        assert limiter.is_ratelimited("192.0.2.1") is True


def test_window_slides():
    limiter = _limiter(limit=1)
    with mock.patch("time.monotonic", return_value=1000.0):
        assert limiter.is_ratelimited("192.0.2.1") is False
        assert limiter.is_ratelimited("192.0.2.1") is True
    with mock.patch("time.monotonic", return_value=1001.5):
        assert limiter.is_ratelimited("192.0.2.1") is False