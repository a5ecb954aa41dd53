# quizzes/ipcheck.py
"""
CIDR allow-list helpers for quiz access control.

Allow-lists are stored as normalized CIDR strings on the quiz and parsed into
``ipaddress`` network objects before matching, so a match is always a plain
bit-prefix comparison. Both IPv4 and IPv6 are supported.
"""
from __future__ import annotations

import ipaddress
import logging
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
IPNetwork = Union[ipaddress.IPv4Network, ipaddress.IPv6Network]


def parse_ip(raw: Optional[str]) -> Optional[IPAddress]:
    """Parse a client address; IPv4-mapped IPv6 (``::ffff:a.b.c.d``) comes back as IPv4."""
    if not raw:
        return None
    try:
        addr = ipaddress.ip_address(str(raw).strip())
    except ValueError:
        return None
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


def normalize_cidr(value) -> Optional[str]:
    """
    "10.0.0.7"        -> "10.0.0.7/32"
    "192.168.1.9/24"  -> "192.168.1.0/24"
    "junk"            -> None
    """
    if not value or not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    try:
        return str(ipaddress.ip_network(trimmed, strict=False))
    except ValueError:
        return None


def normalize_cidr_list(values) -> list[str]:
    """Accepts a list or a comma separated string; drops invalid entries and duplicates."""
    if not values:
        return []
    if isinstance(values, str):
        values = values.split(",")
    out: list[str] = []
    for v in values:
        cidr = normalize_cidr(v)
        if cidr is None:
            logger.warning("Dropping invalid CIDR %r", v)
            continue
        if cidr not in out:
            out.append(cidr)
    return out


def parse_networks(cidrs: Iterable[str]) -> tuple[IPNetwork, ...]:
    nets = []
    for c in cidrs or ():
        try:
            nets.append(ipaddress.ip_network(str(c).strip(), strict=False))
        except ValueError:
            logger.warning("Skipping invalid CIDR %r in allow-list", c)
    return tuple(nets)


def matching_network(ip: Optional[IPAddress], networks: Iterable[IPNetwork]) -> Optional[IPNetwork]:
    if ip is None:
        return None
    for net in networks:
        if ip in net:
            return net
    return None
