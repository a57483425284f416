"""Tests for build identifier generation."""

import re

import pytest

from mobilesign import (
    MAX_IDENTIFIER_LENGTH,
    generate_identifier,
    normalize_identifier,
)

IDENTIFIER_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9_]*[a-z0-9])?$")

SAMPLE_INPUTS = [
    ("ABCD123456", "com.example.app"),
    ("ABC-123", "com.test.app-beta"),
    ("team id with spaces", "com.example.My App"),
    ("__ABC__", "..com..example.."),
    ("Équipe", "com.exämple.app"),
    ("A" * 60, "com.example.app"),
    (
        "VERYLONGTEAMIDTHATEXCEEDSTHERECOMMENDEDLENGTH",
        "com.verylongbundleid.application.name.test",
    ),
    ("ABCD123456", "com.example.app/../../etc"),
    ("ABCD123456", 'com."quoted".app'),
]


class TestNormalizeIdentifier:
    """Tests for normalize_identifier()."""

    def test_lowercases(self):
        assert normalize_identifier("ABCD123456") == "abcd123456"

    def test_collapses_runs(self):
        assert normalize_identifier("com..example--app") == "com_example_app"

    def test_trims_underscores(self):
        assert normalize_identifier("-.com.example.-") == "com_example"

    def test_empty(self):
        assert normalize_identifier("") == ""


class TestGenerateIdentifier:
    """Tests for generate_identifier()."""

    def test_basic(self):
        """Test the plain team and bundle ID case."""
        assert (
            generate_identifier("ABCD123456", "com.example.app")
            == "abcd123456_com_example_app"
        )

    def test_hyphens(self):
        """Test hyphens become single underscores."""
        assert (
            generate_identifier("ABC-123", "com.test.app-beta")
            == "abc_123_com_test_app_beta"
        )

    def test_truncation(self):
        """Test long identifiers are cut to the keychain name limit."""
        identifier = generate_identifier(
            "VERYLONGTEAMIDTHATEXCEEDSTHERECOMMENDEDLENGTH",
            "com.verylongbundleid.application.name.test",
        )
        # the cut lands right after "_com_"; the dangling "_" is trimmed
        assert identifier == "verylongteamidthatexceedstherecommendedlength_com"

    def test_missing_bundle_id(self):
        """Test a team ID alone gives no trailing separator."""
        assert generate_identifier("ABCD123456", "") == "abcd123456"

    @pytest.mark.parametrize("team_id,bundle_id", SAMPLE_INPUTS)
    def test_deterministic(self, team_id, bundle_id):
        assert generate_identifier(team_id, bundle_id) == generate_identifier(
            team_id, bundle_id
        )

    @pytest.mark.parametrize("team_id,bundle_id", SAMPLE_INPUTS)
    def test_charset_and_length(self, team_id, bundle_id):
        """Test the identifier is safe as a file and keychain name."""
        identifier = generate_identifier(team_id, bundle_id)
        assert len(identifier) <= MAX_IDENTIFIER_LENGTH
        assert IDENTIFIER_PATTERN.match(identifier)
        assert "/" not in identifier
        assert '"' not in identifier

    def test_different_pairs_differ(self):
        identifiers = {
            generate_identifier("ABCD123456", "com.example.app"),
            generate_identifier("ABCD123456", "com.example.other"),
            generate_identifier("WXYZ987654", "com.example.app"),
        }
        assert len(identifiers) == 3
