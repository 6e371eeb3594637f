"""Tests for redirect URI pattern matching."""

import pytest

from mcp_oauth.common.redirect import matches, parse_redirect_uris


class TestMatches:
    def test_wildcard_matches_single_segment(self):
        assert matches("g-abc123", ["g-*"])

    def test_wildcard_does_not_cross_slash(self):
        assert not matches("g-abc/123", ["g-*"])

    def test_wildcard_matches_empty_run(self):
        assert matches("g-", ["g-*"])

    @pytest.mark.parametrize(
        "candidate, pattern",
        [
            ("https://acme.test/cb", "https://acme.test/cb"),
            ("https://acme.test/cb/", "https://acme.test/cb"),
            ("https://acme.test/CB", "https://acme.test/cb"),
            ("https://acme.testXcb", "https://acme.test.cb"),
            ("https://acme.test/cb?x=1", "https://acme.test/cb?x=1"),
            ("https://acme.test/cb", "https://acme.test/cb?x=1"),
            ("https://acme.test/c(b)", "https://acme.test/c(b)"),
        ],
    )
    def test_without_wildcard_is_exact_equality(self, candidate, pattern):
        assert matches(candidate, [pattern]) == (candidate == pattern)

    def test_regex_metacharacters_are_literal(self):
        assert not matches("https://acmeXtest/cb", ["https://acme.test/cb"])
        assert not matches("https://acme.test/cbbb", ["https://acme.test/cb+"])

    def test_whole_candidate_must_match(self):
        assert not matches("https://acme.test/cb/extra", ["https://acme.test/cb"])
        assert not matches("evil://https://acme.test/cb", ["https://acme.test/cb"])

    def test_host_wildcard_stays_in_one_segment(self):
        pattern = "https://*.acme.test/cb"
        assert matches("https://eu.acme.test/cb", [pattern])
        assert not matches("https://evil.com/x.acme.test/cb", [pattern])

    def test_chat_assistant_callback(self):
        pattern = "https://chat.example.com/aip/g-*/oauth/callback"
        assert matches("https://chat.example.com/aip/g-1a2b3c/oauth/callback", [pattern])
        assert not matches("https://chat.example.com/aip/g-1/x/oauth/callback", [pattern])

    def test_any_pattern_suffices(self):
        assert matches("http://localhost:3000/cb", ["https://acme.test/cb", "http://localhost:*/cb"])

    def test_empty_allow_list(self):
        assert not matches("https://acme.test/cb", [])


class TestParseRedirectUris:
    def test_native_list(self):
        assert parse_redirect_uris(["a", "b"]) == ["a", "b"]

    def test_json_encoded_list(self):
        assert parse_redirect_uris('["https://a.test/cb", "g-*"]') == ["https://a.test/cb", "g-*"]

    def test_bare_string(self):
        assert parse_redirect_uris("https://a.test/cb") == ["https://a.test/cb"]

    def test_json_encoded_string(self):
        assert parse_redirect_uris('"https://a.test/cb"') == ["https://a.test/cb"]

    def test_unusable_value(self):
        assert parse_redirect_uris(None) == []
        assert parse_redirect_uris({"uri": "x"}) == []
