"""Target URL construction for relayed requests."""
from typing import Optional, Sequence
from urllib.parse import parse_qsl, quote, urlsplit, urlunsplit


def split_fragment(fragment: str) -> tuple[str, str]:
    """Split a decoded ``path[?query]`` fragment into path and query."""
    path, _, query = fragment.partition("?")
    return path, query


def join_path(base_path: str, relative_path: str) -> str:
    """
    Join the upstream base path with a decoded relative path.

    >>> join_path("/", "gtm.js")
    '/gtm.js'
    >>> join_path("/tag/", "/g/collect")
    '/tag/g/collect'
    """
    base = base_path.rstrip("/")
    rel = relative_path.lstrip("/")
    if not rel:
        return base + "/" if base else "/"
    return f"{base}/{rel}"


def merge_query(decoded_query: str, inbound_query: str) -> str:
    """
    Merge query strings, decoded fragment parameters first.

    Both are kept verbatim; inbound parameters never replace decoded ones.
    """
    return "&".join(q for q in (decoded_query, inbound_query) if q)


def query_keys(query: str) -> set[str]:
    return {k for k, _ in parse_qsl(query, keep_blank_values=True)}


def inject_client_ip(query: str, client_ip: Optional[str], ip_param_keys: Sequence[str]) -> str:
    """
    Append the client IP under the first configured key.

    Nothing is added when there is no IP, no configured key, or when any of
    the configured keys is already present in the query.
    """
    if not client_ip or not ip_param_keys:
        return query
    if query_keys(query) & set(ip_param_keys):
        return query
    param = f"{ip_param_keys[0]}={quote(client_ip, safe='')}"
    return f"{query}&{param}" if query else param


def build_target_url(
    base_url: str,
    fragment: str,
    inbound_query: str = "",
    client_ip: Optional[str] = None,
    ip_param_keys: Sequence[str] = (),
) -> str:
    """
    Build the upstream URL for a decoded fragment.

    Args:
        base_url: Upstream base URL (scheme, host, base path)
        fragment: Decoded ``relative/path[?query]``
        inbound_query: Raw query string of the inbound relay request
        client_ip: Resolved client IP to inject, if any
        ip_param_keys: Ordered candidate parameter names for the client IP

    Returns:
        Absolute upstream URL
    """
    base = urlsplit(base_url)
    relative_path, decoded_query = split_fragment(fragment)

    query = merge_query(decoded_query, inbound_query)
    query = inject_client_ip(query, client_ip, ip_param_keys)

    return urlunsplit((base.scheme, base.netloc, join_path(base.path, relative_path), query, ""))
