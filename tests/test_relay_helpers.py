"""Tests for target URL building, cookie rewriting and client IP resolution."""
import pytest
from starlette.datastructures import Headers

from tagrelay.services.relay.client_ip import resolve_client_ip
from tagrelay.services.relay.cookies import registrable_domain, rewrite_set_cookie
from tagrelay.services.relay.target import (
    build_target_url,
    inject_client_ip,
    join_path,
    merge_query,
)


class TestTargetUrl:
    """Test upstream URL reconstruction"""

    def test_simple_fragment(self):
        url = build_target_url("https://gtm.example.net/", "gtm.js?id=GTM-ABC123")
        assert url == "https://gtm.example.net/gtm.js?id=GTM-ABC123"

    def test_base_path_is_kept(self):
        url = build_target_url("https://sst.example.net/tag", "g/collect?v=2")
        assert url == "https://sst.example.net/tag/g/collect?v=2"

    def test_leading_slash_in_fragment(self):
        assert join_path("/tag/", "/g/collect") == "/tag/g/collect"
        assert join_path("", "gtm.js") == "/gtm.js"
        assert join_path("/", "") == "/"

    def test_decoded_query_comes_first(self):
        url = build_target_url("https://gtm.example.net/", "g/collect?bar=2", inbound_query="foo=1")
        assert url == "https://gtm.example.net/g/collect?bar=2&foo=1"

    def test_inbound_query_never_replaces_decoded(self):
        assert merge_query("a=1", "a=2") == "a=1&a=2"
        assert merge_query("", "a=2") == "a=2"
        assert merge_query("a=1", "") == "a=1"

    def test_query_is_not_reencoded(self):
        url = build_target_url("https://gtm.example.net/", "g/collect?dl=https%3A%2F%2Fx.test%2F&en=page_view")
        assert url.endswith("?dl=https%3A%2F%2Fx.test%2F&en=page_view")

    def test_client_ip_injected_under_first_key(self):
        url = build_target_url(
            "https://gtm.example.net/",
            "g/collect?v=2",
            client_ip="203.0.113.7",
            ip_param_keys=["uip", "ip"],
        )
        assert url == "https://gtm.example.net/g/collect?v=2&uip=203.0.113.7"

    @pytest.mark.parametrize("query", ["v=2&uip=198.51.100.1", "v=2&ip=198.51.100.1", "ip="])
    def test_client_ip_not_duplicated(self, query):
        assert inject_client_ip(query, "203.0.113.7", ["uip", "ip"]) == query

    def test_client_ip_key_present_in_inbound_query(self):
        url = build_target_url(
            "https://gtm.example.net/",
            "g/collect?v=2",
            inbound_query="ip=198.51.100.1",
            client_ip="203.0.113.7",
            ip_param_keys=["uip", "ip"],
        )
        assert "uip=" not in url
        assert url.endswith("v=2&ip=198.51.100.1")

    def test_no_ip_injection_without_keys_or_ip(self):
        assert inject_client_ip("v=2", None, ["uip"]) == "v=2"
        assert inject_client_ip("v=2", "203.0.113.7", []) == "v=2"
        assert inject_client_ip("", "203.0.113.7", ["uip"]) == "uip=203.0.113.7"

    def test_ipv6_is_quoted(self):
        assert inject_client_ip("", "2001:db8::1", ["uip"]) == "uip=2001%3Adb8%3A%3A1"


class TestCookieRewrite:
    """Test Set-Cookie scoping"""

    def test_domain_added_and_path_kept(self):
        rewritten = rewrite_set_cookie("sid=abc; Path=/x", "app.example.com")
        parts = [p.strip() for p in rewritten.split(";")]

        assert parts[0] == "sid=abc"
        assert "Domain=.example.com" in parts
        assert "Path=/x" in parts
        assert "Path=/" not in parts

    def test_path_added_when_missing(self):
        rewritten = rewrite_set_cookie("_ga=GA1.1.1; Max-Age=63072000; Secure", "www.shop.example.co")
        parts = [p.strip() for p in rewritten.split(";")]

        assert "Path=/" in parts
        assert "Domain=.example.co" in parts
        assert "Max-Age=63072000" in parts
        assert "Secure" in parts

    def test_upstream_domain_replaced(self):
        rewritten = rewrite_set_cookie("FPID=x; Domain=gtm.example.net; Path=/", "app.example.com:8443")

        assert "gtm.example.net" not in rewritten
        assert rewritten.count("Domain=") == 1
        assert "Domain=.example.com" in rewritten

    def test_ip_host_leaves_domain_untouched(self):
        assert rewrite_set_cookie("a=1; Path=/", "127.0.0.1:8080") == "a=1; Path=/"
        assert rewrite_set_cookie("a=1", "localhost") == "a=1; Path=/"

    def test_registrable_domain(self):
        assert registrable_domain("app.example.com") == "example.com"
        assert registrable_domain("example.com.") == "example.com"
        assert registrable_domain("[::1]:8080") is None
        assert registrable_domain("10.0.0.1") is None


class TestClientIp:
    """Test client IP resolution order"""

    def test_cdn_header_wins(self):
        headers = Headers({
            "cf-connecting-ip": "203.0.113.1",
            "true-client-ip": "203.0.113.2",
            "x-real-ip": "203.0.113.3",
            "x-forwarded-for": "203.0.113.4",
        })
        assert resolve_client_ip(headers, "10.0.0.1") == "203.0.113.1"

    def test_vendor_then_proxy_headers(self):
        assert resolve_client_ip(Headers({"true-client-ip": "203.0.113.2", "x-real-ip": "203.0.113.3"}), None) == "203.0.113.2"
        assert resolve_client_ip(Headers({"x-real-ip": "203.0.113.3", "x-forwarded-for": "203.0.113.4"}), None) == "203.0.113.3"

    def test_first_forwarded_for_hop(self):
        headers = Headers({"x-forwarded-for": "203.0.113.7, 10.0.0.2, 10.0.0.3"})
        assert resolve_client_ip(headers, "10.0.0.3") == "203.0.113.7"

    def test_invalid_values_skipped(self):
        headers = Headers({"cf-connecting-ip": "unknown", "x-forwarded-for": "garbage, 1.2.3.4"})
        assert resolve_client_ip(headers, "192.0.2.10") == "192.0.2.10"

    def test_no_information(self):
        assert resolve_client_ip(Headers({}), None) is None
