"""
Private-network classification for outbound image fetches.

Classification is purely textual: hostnames are never resolved. A public
hostname whose DNS record points at a private address is NOT caught here.
Neither are short or integer IPv4 forms such as ``127.1`` or ``2130706433``,
which are classified public although a resolver may map them to loopback.
"""
import ipaddress
import re
from typing import Optional


_LOCALHOST_NAMES = {"localhost", "0.0.0.0", "::1"}

_IPV4_LITERAL = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")

_PRIVATE_IPV4_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),  # Loopback
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("169.254.0.0/16"),  # Link-local
]

_PRIVATE_IPV6_PREFIXES = ("fc", "fd", "fe80:")


def parse_ipv4(host: str) -> Optional[ipaddress.IPv4Address]:
    """
    Parse a dotted-quad literal, tolerating leading zeros in octets.

    Args:
        host: Candidate hostname

    Returns:
        The address, or None if ``host`` is not an IPv4 literal
    """
    if not _IPV4_LITERAL.match(host):
        return None
    octets = [int(part, 10) for part in host.split(".")]
    if any(octet > 255 for octet in octets):
        return None
    return ipaddress.IPv4Address(bytes(octets))


def is_private_host(host: str) -> bool:
    """
    Check whether a host is localhost, loopback, private or link-local.

    Args:
        host: Hostname or IP literal (IPv6 may be bracketed and carry a zone)

    Returns:
        True if fetching from the host must be blocked by default
    """
    h = host.strip().lower()
    if h.startswith("[") and h.endswith("]"):
        h = h[1:-1]

    if h in _LOCALHOST_NAMES or h.endswith(".localhost"):
        return True

    ipv4 = parse_ipv4(h)
    if ipv4 is not None:
        return any(ipv4 in network for network in _PRIVATE_IPV4_NETWORKS)

    if ":" in h:
        no_zone = h.split("%", 1)[0]
        if no_zone == "::1":
            return True
        return no_zone.startswith(_PRIVATE_IPV6_PREFIXES)

    return False
