"""
Network helper utilities for safe client IP extraction.

Header values are never trusted verbatim: every candidate pulled out of a
forwarding header is cleaned and must pass is_valid_ip() before use.
"""

from dataclasses import dataclass
from enum import Enum
from ipaddress import IPv6Address, ip_address, ip_network
from typing import Optional, Tuple


# Private-use ranges (RFC 1918 and RFC 4193). Documentation and shared
# ranges are deliberately absent, they can still identify a visitor.
_PRIVATE_NETWORKS = tuple(
    ip_network(cidr)
    for cidr in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "fc00::/7")
)


def split_host_port(address: str) -> Tuple[str, str]:
    """
    Split "host:port" or "[host]:port" into host and port.

    Raises ValueError when the address has no port or the host is an
    unbracketed IPv6 literal.
    """
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {address!r}")
        host, rest = address[1:end], address[end + 1:]
        if not rest.startswith(":"):
            raise ValueError(f"missing port in address {address!r}")
        port = rest[1:]
    else:
        host, sep, port = address.rpartition(":")
        if not sep:
            raise ValueError(f"missing port in address {address!r}")
        if ":" in host:
            raise ValueError(f"too many colons in address {address!r}")

    if ":" in port or any(c in host + port for c in "[]"):
        raise ValueError(f"malformed address {address!r}")
    return host, port


def clean_ip(value: str) -> str:
    """Strip a port suffix; return the value unchanged if it can't be split."""
    if ":" in value:
        try:
            host, _ = split_host_port(value)
        except ValueError:
            return value
        return host
    return value


def _parse_ip(value: str):
    # Zoned addresses (fe80::1%eth0) never identify a remote visitor
    if "%" in value:
        return None
    try:
        address = ip_address(value)
    except ValueError:
        return None
    if isinstance(address, IPv6Address) and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def is_private_ip(address) -> bool:
    return any(address in network for network in _PRIVATE_NETWORKS)


def is_valid_ip(value: str) -> bool:
    """True for a public address: not private, loopback or unspecified."""
    address = _parse_ip(value)
    return (
        address is not None
        and not is_private_ip(address)
        and not address.is_loopback
        and not address.is_unspecified
    )


def parse_x_forwarded_for_header(value: str) -> str:
    """
    Take the last entry of a comma-separated forwarding chain.

    Proxies append on forward, so the last entry was written by the hop
    closest to us. Also used for True-Client-IP and CF-Connecting-IP.
    """
    ip = clean_ip(value.split(",")[-1].strip())
    return ip if is_valid_ip(ip) else ""


def parse_forwarded_header(value: str) -> str:
    """Read the first for= parameter of the last hop of an RFC 7239 header."""
    last_hop = value.split(",")[-1]

    for pair in last_hop.split(";"):
        key, sep, token = pair.partition("=")
        if not sep or key.strip() != "for":
            continue

        ip = clean_ip(token.strip().strip('"'))
        if ip.startswith("[") and ip.endswith("]"):
            ip = ip[1:-1]
        return ip if is_valid_ip(ip) else ""

    return ""


def parse_x_real_ip_header(value: str) -> str:
    ip = clean_ip(value.strip())
    return ip if is_valid_ip(ip) else ""


class ParseRule(Enum):
    """How a forwarding header's value is turned into a candidate IP."""
    LAST_IN_LIST = "last_in_list"
    FORWARDED = "forwarded"
    SINGLE_VALUE = "single_value"


_RULE_FUNCTIONS = {
    ParseRule.LAST_IN_LIST: parse_x_forwarded_for_header,
    ParseRule.FORWARDED: parse_forwarded_header,
    ParseRule.SINGLE_VALUE: parse_x_real_ip_header,
}


@dataclass(frozen=True)
class HeaderParser:
    """A forwarding header and the rule used to read it."""
    header: str
    rule: ParseRule

    def parse(self, value: str) -> str:
        return _RULE_FUNCTIONS[self.rule](value)

    def matches(self, name: str) -> bool:
        return self.header.lower() == name.strip().lower()


CF_CONNECTING_IP = HeaderParser("CF-Connecting-IP", ParseRule.LAST_IN_LIST)
TRUE_CLIENT_IP = HeaderParser("True-Client-IP", ParseRule.LAST_IN_LIST)
X_FORWARDED_FOR = HeaderParser("X-Forwarded-For", ParseRule.LAST_IN_LIST)
FORWARDED = HeaderParser("Forwarded", ParseRule.FORWARDED)
X_REAL_IP = HeaderParser("X-Real-IP", ParseRule.SINGLE_VALUE)

ALL_IP_HEADERS: Tuple[HeaderParser, ...] = (
    CF_CONNECTING_IP,
    TRUE_CLIENT_IP,
    X_FORWARDED_FOR,
    FORWARDED,
    X_REAL_IP,
)


def find_header_parser(name: str) -> Optional[HeaderParser]:
    for parser in ALL_IP_HEADERS:
        if parser.matches(name):
            return parser
    return None
