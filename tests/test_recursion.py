import dns.message
import dns.rdatatype
import pytest

from dnsrelay.recursion import MAX_DOMAIN_NAME_LEN, RecursionDetector, msg_to_signature


def _query(name="example.com.", rdtype="A", msg_id=1):
    msg = dns.message.make_query(name, rdtype)
    msg.id = msg_id
    return msg


def test_signature_layout():
    msg = _query("example.com.", "A", msg_id=0x1234)
    sig = msg_to_signature(msg)

    assert len(sig) == 4 + MAX_DOMAIN_NAME_LEN
    assert sig[:2] == (0x1234).to_bytes(2, "big")
    assert sig[2:4] == int(dns.rdatatype.A).to_bytes(2, "big")
    assert sig[4:4 + len(b"example.com.")] == b"example.com."
    assert set(sig[4 + len(b"example.com."):]) == {0}


def test_signature_differs_by_id_and_type():
    base = msg_to_signature(_query(msg_id=1))
    assert msg_to_signature(_query(msg_id=1)) == base
    assert msg_to_signature(_query(msg_id=2)) != base
    assert msg_to_signature(_query(rdtype="AAAA", msg_id=1)) != base


def test_signature_without_question_raises():
    with pytest.raises(ValueError):
        msg_to_signature(dns.message.Message())


def test_added_message_is_detected():
    rd = RecursionDetector(ttl=60, max_count=10)
    msg = _query()

    assert rd.check(msg) is False
    rd.add(msg)
    assert rd.check(msg) is True
    assert rd.check(_query(msg_id=2)) is False


def test_expired_message_is_not_detected():
    rd = RecursionDetector(ttl=0, max_count=10)
    msg = _query()
    rd.add(msg)
    assert rd.check(msg) is False


def test_empty_question_is_ignored():
    rd = RecursionDetector(ttl=60, max_count=10)
    empty = dns.message.Message()
    rd.add(empty)
    assert rd.check(empty) is False


def test_least_recently_used_is_evicted():
    rd = RecursionDetector(ttl=60, max_count=1)
    first, second = _query(msg_id=1), _query(msg_id=2)

    rd.add(first)
    rd.add(second)

    assert rd.check(first) is False
    assert rd.check(second) is True


def test_clear_forgets_everything():
    rd = RecursionDetector(ttl=60, max_count=10)
    msg = _query()
    rd.add(msg)
    rd.clear()
    assert rd.check(msg) is False