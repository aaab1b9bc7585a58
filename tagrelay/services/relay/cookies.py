"""Set-Cookie rewriting for same-site delivery through the relay."""
import ipaddress
from typing import Optional


def registrable_domain(host: str) -> Optional[str]:
    """
    Last two labels of a hostname, or None for IPs and single-label hosts.

    >>> registrable_domain("app.example.com:8443")
    'example.com'
    """
    hostname = host.strip().lower()
    if hostname.startswith("["):
        return None  # bracketed IPv6 literal
    hostname = hostname.rsplit(":", 1)[0].rstrip(".")
    try:
        ipaddress.ip_address(hostname)
        return None
    except ValueError:
        pass

    labels = [label for label in hostname.split(".") if label]
    if len(labels) < 2:
        return None
    return ".".join(labels[-2:])


def rewrite_set_cookie(header_value: str, request_host: str) -> str:
    """
    Scope an upstream cookie to the serving site.

    Replaces any ``Domain`` attribute with ``.<registrable domain>`` of the
    inbound host and adds ``Path=/`` when no ``Path`` is present.

    Args:
        header_value: One upstream Set-Cookie header value
        request_host: Host of the inbound relay request

    Returns:
        Rewritten Set-Cookie value
    """
    parts = [p.strip() for p in header_value.split(";")]
    name_value, attributes = parts[0], [p for p in parts[1:] if p]

    domain = registrable_domain(request_host)
    kept = []
    has_path = False
    for attr in attributes:
        key = attr.split("=", 1)[0].strip().lower()
        if key == "domain" and domain:
            continue
        if key == "path":
            has_path = True
        kept.append(attr)

    if domain:
        kept.append(f"Domain=.{domain}")
    if not has_path:
        kept.append("Path=/")

    return "; ".join([name_value] + kept)
