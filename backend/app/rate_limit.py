"""Rate limiting for the doorlog backend.

Clients are keyed by IP. X-Forwarded-For is only honoured when the direct
peer is a trusted proxy, otherwise any client could pick its own key.
"""

import ipaddress

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings
from .logging_config import get_logger

logger = get_logger("doorlog.rate_limit")

Network = ipaddress.IPv4Network | ipaddress.IPv6Network


def parse_cidrs(cidrs: list[str]) -> list[Network]:
    """Parse CIDR strings, dropping (and logging) invalid ones."""
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr.strip(), strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr!r}")
    return networks


_trusted_networks: list[Network] | None = None


def _get_trusted_networks() -> list[Network]:
    global _trusted_networks
    if _trusted_networks is None:
        _trusted_networks = parse_cidrs(get_settings().trusted_proxy_cidrs)
    return _trusted_networks


def is_trusted_proxy(ip_str: str, networks: list[Network] | None = None) -> bool:
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    if networks is None:
        networks = _get_trusted_networks()
    return any(addr in network for network in networks)


def get_client_ip(request) -> str:
    """Client IP: leftmost X-Forwarded-For entry behind a trusted proxy, else the peer."""
    direct_ip = get_remote_address(request)
    if is_trusted_proxy(direct_ip):
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
            if client_ip:
                return client_ip
    return direct_ip


def write_limit() -> str:
    """Limit applied to the write endpoints, read from settings per request."""
    return get_settings().rate_limit


limiter = Limiter(key_func=get_client_ip)
