"""
Client IP resolution behind trusted reverse proxies.

The resolver is built once from settings and shared read-only by every
request, so no locking is involved.
"""

from dataclasses import dataclass, field
from ipaddress import IPv6Address, ip_address, ip_network
from typing import Iterable, Mapping, Optional, Tuple

from starlette.requests import Request

from app.config import ConfigurationError, Settings
from app.utils.network import HeaderParser, clean_ip, find_header_parser


class SubnetTrustTable:
    """CIDR ranges of proxies allowed to set forwarding headers."""

    def __init__(self, networks: Iterable = ()):
        self._networks = tuple(networks)

    @classmethod
    def from_cidrs(cls, cidrs: Iterable[str]) -> "SubnetTrustTable":
        networks = []
        for cidr in cidrs:
            value = cidr.strip()
            if "/" not in value:
                raise ConfigurationError(f"Error parsing subnet {cidr!r}: missing prefix length")
            try:
                networks.append(ip_network(value, strict=False))
            except ValueError as e:
                raise ConfigurationError(f"Error parsing subnet {cidr!r}: {e}") from e
        return cls(networks)

    @property
    def networks(self) -> Tuple:
        return self._networks

    def __len__(self) -> int:
        return len(self._networks)

    def __bool__(self) -> bool:
        return bool(self._networks)

    def contains(self, ip) -> bool:
        if isinstance(ip, str):
            try:
                ip = ip_address(ip)
            except ValueError:
                return False
        if isinstance(ip, IPv6Address) and ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped
        return any(ip in network for network in self._networks)

    def __contains__(self, ip) -> bool:
        return self.contains(ip)


def load_ip_headers(names: Iterable[str]) -> Tuple[HeaderParser, ...]:
    """Map configured header names onto the built-in parsers, keeping order."""
    parsers = []
    for name in names:
        parser = find_header_parser(name)
        if parser is None:
            raise ConfigurationError(f"Header invalid: {name!r}")
        parsers.append(parser)
    return tuple(parsers)


@dataclass(frozen=True)
class ClientIPResolver:
    """
    Resolve the real visitor IP of a request.

    With no trusted subnets configured, forwarding headers are honoured
    from any peer. That keeps single-proxy deployments simple but lets a
    client that reaches the proxy directly pick its own IP.
    """
    headers: Tuple[HeaderParser, ...] = ()
    trusted_subnets: SubnetTrustTable = field(default_factory=SubnetTrustTable)

    @classmethod
    def from_settings(cls, active_settings: Settings) -> "ClientIPResolver":
        return cls(
            headers=load_ip_headers(active_settings.ip_headers),
            trusted_subnets=SubnetTrustTable.from_cidrs(active_settings.trusted_subnets),
        )

    def resolve(self, remote_addr: str, headers: Mapping[str, str]) -> str:
        """
        Return the best-guess client IP; never raises.

        headers must look up names case-insensitively (Starlette's Headers).
        """
        peer_ip = clean_ip(remote_addr)

        if self.trusted_subnets and not self.trusted_subnets.contains(peer_ip):
            return peer_ip

        for parser in self.headers:
            value = headers.get(parser.header) or ""
            if value.strip():
                candidate = parser.parse(value)
                if candidate:
                    return candidate

        return peer_ip


def remote_address(request: Request) -> str:
    """The peer as "host:port" ("[host]:port" for IPv6)."""
    client = request.client
    if not client or not client.host:
        return ""
    host: Optional[str] = client.host
    if client.port is None:
        return host
    if ":" in host:
        return f"[{host}]:{client.port}"
    return f"{host}:{client.port}"


def get_client_ip(request: Request, resolver: ClientIPResolver) -> str:
    return resolver.resolve(remote_address(request), request.headers)
