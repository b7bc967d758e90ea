"""
Tests for forwarding header parsing and IP validation
"""

import pytest

from app.utils.network import (
    ALL_IP_HEADERS,
    FORWARDED,
    ParseRule,
    X_FORWARDED_FOR,
    X_REAL_IP,
    clean_ip,
    find_header_parser,
    is_valid_ip,
    parse_forwarded_header,
    parse_x_forwarded_for_header,
    parse_x_real_ip_header,
    split_host_port,
)


@pytest.mark.parametrize(
    "header, expected",
    [
        ("for=12.34.56.78;host=example.com;proto=https, for=23.45.67.89", "23.45.67.89"),
        ("for=12.34.56.78, for=23.45.67.89;secret=egah2CGj55fSJFs, for=65.182.89.102", "65.182.89.102"),
        ("for=12.34.56.78, for=23.45.67.89;secret=x, for=10.1.2.3", ""),
        ("for=192.0.2.60;proto=http;by=203.0.113.43", "192.0.2.60"),
        ("for=10.1.2.3;proto=http;by=203.0.113.43", ""),
        ("proto=http;by=203.0.113.43;for=192.0.2.61", "192.0.2.61"),
        ("proto=http;by=203.0.113.43;for=10.1.2.3", ""),
        ('for="[2001:db8:cafe::17]:4711"', "2001:db8:cafe::17"),
        ('for="[2001:db8:cafe::17]"', "2001:db8:cafe::17"),
        ('for="65.182.89.102:8080"', "65.182.89.102"),
        ("proto=https;by=203.0.113.43", ""),
        ("For=65.182.89.102", ""),
        ("   ", ""),
        ("", ""),
    ],
)
def test_parse_forwarded_header(header: str, expected: str):
    assert parse_forwarded_header(header) == expected


@pytest.mark.parametrize(
    "header, expected",
    [
        ("65.182.89.102", "65.182.89.102"),
        ("127.0.0.1, 23.21.45.67, 65.182.89.102", "65.182.89.102"),
        ("127.0.0.1,23.21.45.67,65.182.89.102", "65.182.89.102"),
        ("65.182.89.102,23.21.45.67,127.0.0.1", ""),
        ("23.21.45.67, 65.182.89.102:5050", "65.182.89.102"),
        ("23.21.45.67, [2001:db8::1]:5050", "2001:db8::1"),
        ("23.21.45.67, 2001:db8::1", "2001:db8::1"),
        ("   ", ""),
        ("", ""),
    ],
)
def test_parse_x_forwarded_for_header(header: str, expected: str):
    assert parse_x_forwarded_for_header(header) == expected


@pytest.mark.parametrize(
    "header, expected",
    [
        ("", ""),
        ("  ", ""),
        ("invalid", ""),
        ("127.0.0.1", ""),
        ("65.182.89.102", "65.182.89.102"),
        ("  65.182.89.102  ", "65.182.89.102"),
        ("65.182.89.102:443", "65.182.89.102"),
    ],
)
def test_parse_x_real_ip_header(header: str, expected: str):
    assert parse_x_real_ip_header(header) == expected


@pytest.mark.parametrize(
    "value",
    [
        "invalid",
        "",
        "  ",
        "127.0.0.1",
        "127.8.8.8",
        "0.0.0.0",
        "::",
        "::1",
        "10.1.2.3",
        "172.16.0.1",
        "172.31.255.255",
        "192.168.1.1",
        "fd12:3456::1",
        "::ffff:10.0.0.1",
        "::ffff:127.0.0.1",
        "fe80::1%eth0",
        "123.456.789.012",
    ],
)
def test_is_valid_ip_rejects(value: str):
    assert is_valid_ip(value) is False


@pytest.mark.parametrize(
    "value",
    ["1.2.3.4", "65.182.89.102", "172.32.0.1", "192.0.2.60", "2001:db8::1", "::ffff:1.2.3.4"],
)
def test_is_valid_ip_accepts(value: str):
    assert is_valid_ip(value) is True


def test_split_host_port():
    assert split_host_port("1.2.3.4:80") == ("1.2.3.4", "80")
    assert split_host_port("[2001:db8::1]:443") == ("2001:db8::1", "443")
    assert split_host_port("example.com:") == ("example.com", "")


@pytest.mark.parametrize("address", ["1.2.3.4", "2001:db8::1", "[2001:db8::1]", "[::1]:80:90", "[::1"])
def test_split_host_port_rejects_malformed(address: str):
    with pytest.raises(ValueError):
        split_host_port(address)


def test_clean_ip():
    assert clean_ip("123.456.789.012:29302") == "123.456.789.012"
    assert clean_ip("1.1.1.1") == "1.1.1.1"
    assert clean_ip("[2001:db8::1]:8080") == "2001:db8::1"
    # Bare IPv6 literals can't be split and are kept as they are
    assert clean_ip("2001:db8::1") == "2001:db8::1"
    assert clean_ip("not:an:address") == "not:an:address"


def test_registry_holds_the_five_built_in_headers():
    assert [parser.header for parser in ALL_IP_HEADERS] == [
        "CF-Connecting-IP",
        "True-Client-IP",
        "X-Forwarded-For",
        "Forwarded",
        "X-Real-IP",
    ]
    rules = {parser.header: parser.rule for parser in ALL_IP_HEADERS}
    assert rules["CF-Connecting-IP"] is ParseRule.LAST_IN_LIST
    assert rules["True-Client-IP"] is ParseRule.LAST_IN_LIST
    assert rules["Forwarded"] is ParseRule.FORWARDED
    assert rules["X-Real-IP"] is ParseRule.SINGLE_VALUE


def test_find_header_parser_is_case_insensitive():
    assert find_header_parser("x-real-ip") is X_REAL_IP
    assert find_header_parser("  FORWARDED ") is FORWARDED
    assert find_header_parser("X-Client-IP") is None


def test_header_parser_dispatches_on_rule():
    assert X_FORWARDED_FOR.parse("127.0.0.1, 65.182.89.102") == "65.182.89.102"
    assert FORWARDED.parse("for=192.0.2.60;proto=http") == "192.0.2.60"
    assert X_REAL_IP.parse("103.0.53.43") == "103.0.53.43"


def test_header_parser_is_immutable():
    with pytest.raises(AttributeError):
        X_REAL_IP.header = "X-Other"
