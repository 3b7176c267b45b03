"""Trusted IP parsing.

Trusted IPs on a policy are stored as parsed descriptors rather than the raw
strings the operator supplied.
"""

from __future__ import annotations

__all__ = [
    "extract_ip_details",
    "is_valid_ip_or_cidr",
]

import ipaddress

from oidc_auth.models import IpType, TrustedIp


def is_valid_ip_or_cidr(value: str) -> bool:
    """Check that value is an IPv4/IPv6 address or CIDR block.

    Host bits set in a CIDR block (e.g. "10.0.0.1/8") are accepted.
    """
    if not value or value != value.strip():
        return False
    try:
        if "/" in value:
            ipaddress.ip_network(value, strict=False)
        else:
            ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def extract_ip_details(value: str) -> TrustedIp:
    """Parse an address or CIDR block into a TrustedIp descriptor.

    Args:
        value: Address or CIDR block, already validated with is_valid_ip_or_cidr.

    Returns:
        Descriptor with the address part, prefix length (None for a bare
        address) and IP version.

    Raises:
        ValueError: If value is not an address or CIDR block.
    """
    if "/" in value:
        address, _, prefix = value.partition("/")
        network = ipaddress.ip_network(value, strict=False)
        ip_type = IpType.IPV4 if network.version == 4 else IpType.IPV6
        return TrustedIp(ip_address=address, prefix=int(prefix), type=ip_type)

    parsed = ipaddress.ip_address(value)
    ip_type = IpType.IPV4 if parsed.version == 4 else IpType.IPV6
    return TrustedIp(ip_address=value, type=ip_type)
