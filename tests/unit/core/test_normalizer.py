"""Tests for the identifier normalizer."""

import pytest

from fastapi_openid.core.normalizer import normalize_identifier, normalize_url
from fastapi_openid.exceptions import InvalidIdentifierError


class TestNormalizeIdentifier:
    def test_adds_scheme_and_trailing_slash(self):
        assert normalize_identifier("loudthinking.com") == "http://loudthinking.com/"

    def test_keeps_existing_scheme(self):
        assert normalize_identifier("http://loudthinking.com") == "http://loudthinking.com/"
        assert normalize_identifier("https://loudthinking.com") == "https://loudthinking.com/"

    def test_lowercases_scheme_and_host_but_not_path(self):
        assert (
            normalize_identifier("HTTP://OPENID.AOL.COM/NEXTANGLER")
            == "http://openid.aol.com/NEXTANGLER"
        )

    def test_mixed_case_host_without_scheme(self):
        assert normalize_identifier("OpenID.AOL.com/NextAngler") == "http://openid.aol.com/NextAngler"

    def test_strips_surrounding_whitespace(self):
        assert normalize_identifier("  loudthinking.com \n") == "http://loudthinking.com/"

    def test_strips_default_http_port(self):
        assert normalize_identifier("http://x.com:80") == "http://x.com/"

    def test_strips_default_https_port(self):
        assert normalize_identifier("https://x.com:443/me") == "https://x.com/me"

    def test_keeps_non_default_port(self):
        assert normalize_identifier("http://x.com:8080") == "http://x.com:8080/"

    def test_keeps_https_port_on_http(self):
        assert normalize_identifier("http://x.com:443/") == "http://x.com:443/"

    def test_port_without_scheme(self):
        assert normalize_identifier("example.com:8000/me") == "http://example.com:8000/me"

    def test_preserves_query_and_fragment(self):
        assert (
            normalize_identifier("example.com/id?user=Bob#Frag")
            == "http://example.com/id?user=Bob#Frag"
        )

    def test_ipv4_host(self):
        assert normalize_identifier("127.0.0.1:3000") == "http://127.0.0.1:3000/"

    def test_ipv6_host(self):
        assert normalize_identifier("http://[::1]:8080/me") == "http://[::1]:8080/me"

    def test_removes_dot_segments(self):
        assert normalize_identifier("example.com/a/./b/../c") == "http://example.com/a/c"

    def test_userinfo_is_kept(self):
        assert normalize_identifier("http://user@Example.com") == "http://user@example.com/"

    def test_normalize_url_alias(self):
        assert normalize_url is normalize_identifier


class TestNormalizeIdentifierIdempotence:
    @pytest.mark.parametrize(
        "identifier",
        [
            "loudthinking.com",
            "HTTP://OPENID.AOL.COM/NEXTANGLER",
            "http://x.com:80",
            "https://x.com:8443/path/",
            "example.com/id?user=Bob",
            "127.0.0.1:3000",
        ],
    )
    def test_normalizing_twice_changes_nothing(self, identifier: str):
        once = normalize_identifier(identifier)
        assert normalize_identifier(once) == once


class TestInvalidIdentifiers:
    def test_none_fails(self):
        with pytest.raises(InvalidIdentifierError, match="None is not an OpenID identifier"):
            normalize_identifier(None)

    def test_empty_string_fails(self):
        with pytest.raises(InvalidIdentifierError, match="is not an OpenID identifier"):
            normalize_identifier("")

    def test_whitespace_only_fails(self):
        with pytest.raises(InvalidIdentifierError):
            normalize_identifier("   ")

    def test_equals_prefixed_name_fails(self):
        with pytest.raises(InvalidIdentifierError):
            normalize_identifier("=name")

    def test_embedded_whitespace_fails(self):
        with pytest.raises(InvalidIdentifierError):
            normalize_identifier("loud thinking.com")

    def test_missing_host_fails(self):
        with pytest.raises(InvalidIdentifierError):
            normalize_identifier("http://")

    def test_invalid_port_fails(self):
        with pytest.raises(InvalidIdentifierError, match="invalid port"):
            normalize_identifier("http://example.com:http/")

    def test_out_of_range_ipv4_fails(self):
        with pytest.raises(InvalidIdentifierError, match="invalid IPv4"):
            normalize_identifier("http://300.1.1.1/")

    def test_host_with_underscore_fails(self):
        with pytest.raises(InvalidIdentifierError, match="invalid host"):
            normalize_identifier("http://bad_host.com/")

    @pytest.mark.parametrize(
        "identifier",
        ["mailto:alice@example.com", "ftp://example.com/", "xri://=name", "http:example.com"],
    )
    def test_non_http_schemes_fail(self, identifier: str):
        with pytest.raises(InvalidIdentifierError, match="is not an OpenID identifier"):
            normalize_identifier(identifier)

    def test_unicode_host_fails(self):
        with pytest.raises(InvalidIdentifierError):
            normalize_identifier("例え.jp")

    def test_non_ascii_fails(self):
        with pytest.raises(InvalidIdentifierError):
            normalize_identifier("http://exämple.com/")
