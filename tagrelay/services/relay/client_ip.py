"""Client IP resolution for relayed requests."""
import ipaddress
from typing import Mapping, Optional

# Checked in order; the first header carrying a valid address wins.
CDN_IP_HEADERS = ("cf-connecting-ip",)
VENDOR_IP_HEADERS = ("true-client-ip", "fastly-client-ip", "akamai-client-ip")
PROXY_IP_HEADERS = ("x-real-ip", "x-client-ip", "x-cluster-client-ip")
FORWARDED_FOR_HEADER = "x-forwarded-for"

CLIENT_IP_HEADERS = CDN_IP_HEADERS + VENDOR_IP_HEADERS + PROXY_IP_HEADERS


def _valid_ip(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    value = value.strip()
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return None
    return value


def first_forwarded_ip(xff: Optional[str]) -> Optional[str]:
    """First hop of an ``X-Forwarded-For`` chain ("client, proxy1, proxy2")."""
    if not xff:
        return None
    return _valid_ip(xff.split(",")[0])


def resolve_client_ip(headers: Mapping[str, str], peer_ip: Optional[str]) -> Optional[str]:
    """
    Resolve the originating client address.

    Preference: CDN connecting-IP header, vendor true-client-IP headers,
    generic reverse-proxy headers, first X-Forwarded-For hop, then the
    transport peer address.

    Args:
        headers: Inbound request headers (case-insensitive mapping)
        peer_ip: Address of the TCP peer, if known

    Returns:
        Client IP string, or None if nothing usable was found
    """
    for name in CLIENT_IP_HEADERS:
        ip = _valid_ip(headers.get(name))
        if ip:
            return ip

    ip = first_forwarded_ip(headers.get(FORWARDED_FOR_HEADER))
    if ip:
        return ip

    return peer_ip or None
