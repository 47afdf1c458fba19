"""
Tests for pattern parsing and address matching.
"""

from ipaddress import ip_address

import pytest

from ipfirewall.errors import InvalidAddressError, InvalidPatternError
from ipfirewall.matching.patterns import (
    CIDRPattern,
    ExactPattern,
    Pattern,
    WildcardPattern,
    matches,
    parse_address,
    parse_pattern,
)


# ── Parsing ──────────────────────────────────────────────


def test_parse_kinds():
    assert isinstance(parse_pattern("10.0.0.1"), ExactPattern)
    assert isinstance(parse_pattern("10.0.0.0/8"), CIDRPattern)
    assert isinstance(parse_pattern("10.0.*.*"), WildcardPattern)
    assert isinstance(parse_pattern("2001:db8::1"), ExactPattern)
    assert isinstance(parse_pattern("2001:db8::/32"), CIDRPattern)


def test_canonical_text():
    """Pattern text is normalized so it can serve as identity."""
    assert parse_pattern(" 192.168.1.1 ").text == "192.168.1.1"
    assert parse_pattern("2001:0DB8:0000::0001").text == "2001:db8::1"
    assert parse_pattern("10.1.2.3/8").text == "10.0.0.0/8"
    assert parse_pattern("10.0.*.*").text == "10.0.*.*"
    assert parse_pattern("2001:DB8:*:*:*:*:*:0001").text == "2001:db8:*:*:*:*:*:1"


def test_mapped_ipv6_normalized_to_ipv4():
    assert parse_pattern("::ffff:10.0.0.1") == parse_pattern("10.0.0.1")
    assert parse_pattern("::ffff:10.0.0.0/104").text == "10.0.0.0/8"


def test_patterns_are_immutable():
    pattern = parse_pattern("10.0.0.1")
    with pytest.raises(AttributeError):
        pattern.address = ip_address("10.0.0.2")


@pytest.mark.parametrize("text", [
    "",
    "   ",
    "10.0.0",
    "10.0.0.1.5",
    "10.0.0.256",
    "abc.def.ghi.jkl",
    "10.0.0.0/33",
    "2001:db8::/129",
    "10.0.0.0/-1",
    "10.0.0.0/x",
    "10.0.0.0/²",
    "10.0.0.0/８",
    "2001:db8::/٦4",
    "10.0.0.0/",
    "10.*.*",
    "10.*.*.*.*",
    "10.*.*.300",
    "10.*.x.*",
    "10.*.*.*/8",
    "2001:db8:*::1",
    "2001:db8:*:*:*:*:*:fffff",
])
def test_invalid_patterns_rejected(text):
    with pytest.raises(InvalidPatternError):
        parse_pattern(text)


def test_invalid_pattern_is_value_error():
    """Callers catching ValueError also catch malformed patterns."""
    with pytest.raises(ValueError):
        parse_pattern("not-an-ip")


def test_parse_address():
    assert str(parse_address("::ffff:1.2.3.4")) == "1.2.3.4"
    assert str(parse_address("fe80::1%eth0")) == "fe80::1"
    with pytest.raises(InvalidAddressError):
        parse_address("999.1.1.1")
    with pytest.raises(InvalidAddressError):
        parse_address("10.0.0.0/8")


# ── Exact ────────────────────────────────────────────────


def test_exact_match():
    assert matches("192.168.1.1", "192.168.1.1")
    assert not matches("192.168.1.2", "192.168.1.1")
    assert matches("2001:db8::1", "2001:0db8:0:0:0:0:0:1")


def test_exact_mapped_forms_are_equal():
    assert matches("::ffff:192.168.1.1", "192.168.1.1")
    assert matches("192.168.1.1", "::ffff:192.168.1.1")


def test_zone_id_ignored_in_patterns():
    pattern = parse_pattern("fe80::1%eth0")
    assert pattern.text == "fe80::1"
    assert pattern.matches(parse_address("fe80::1%eth1"))
    assert matches("fe80::1", "fe80::1%eth0")
    assert parse_pattern("fe80::%eth0/64").text == "fe80::/64"
    assert ExactPattern(ip_address("fe80::1%eth0")) == parse_pattern("fe80::1")


def test_pattern_base_is_abstract():
    with pytest.raises(TypeError):
        Pattern()


# ── CIDR ─────────────────────────────────────────────────


def test_cidr_match():
    assert matches("10.1.2.3", "10.0.0.0/8")
    assert matches("10.255.255.255", "10.0.0.0/8")
    assert not matches("11.0.0.1", "10.0.0.0/8")


def test_cidr_prefix_bits():
    """True iff the top prefix bits agree."""
    pattern = parse_pattern("192.168.0.0/23")
    assert pattern.matches(parse_address("192.168.1.200"))
    assert not pattern.matches(parse_address("192.168.2.0"))
    assert parse_pattern("0.0.0.0/0").matches(parse_address("8.8.8.8"))
    assert parse_pattern("8.8.8.8/32").matches(parse_address("8.8.8.8"))


def test_cidr_family_mismatch():
    assert not matches("2001:db8::1", "10.0.0.0/8")
    assert not matches("10.0.0.1", "::/0")
    assert matches("2001:db8:abcd::1", "2001:db8::/32")


def test_cidr_mapped_address():
    assert matches("::ffff:10.2.3.4", "10.0.0.0/8")


# ── Wildcard ─────────────────────────────────────────────


def test_wildcard_match():
    assert matches("192.168.5.77", "192.168.*.*")
    assert not matches("192.169.5.77", "192.168.*.*")
    assert matches("1.2.3.4", "*.*.*.4")


def test_wildcard_any_octet_invariant():
    """Any value substituted into a '*' position still matches."""
    pattern = parse_pattern("10.*.3.*")
    for value in (0, 1, 127, 255):
        assert pattern.matches(parse_address(f"10.{value}.3.{255 - value}"))
    assert not pattern.matches(parse_address("10.0.4.0"))


def test_wildcard_family_mismatch():
    assert not matches("2001:db8::1", "*.*.*.*")
    assert not matches("10.0.0.1", "*:*:*:*:*:*:*:*")


def test_wildcard_ipv6():
    assert matches("2001:db8:1:2:3:4:5:1", "2001:db8:*:*:*:*:*:1")
    assert not matches("2001:db8:1:2:3:4:5:2", "2001:db8:*:*:*:*:*:1")
