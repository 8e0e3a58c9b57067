# =============================================================================
# tests/unit/test_resource_keys.py
# Unit Tests for Resource-Type Key Derivation
# =============================================================================

import pytest

from finance_core.offline.resource_keys import normalize_endpoint, resource_key


class TestNormalizeEndpoint:
    """Test endpoint normalization"""

    @pytest.mark.parametrize(
        "endpoint, expected",
        [
            ("/customers", "/customers"),
            ("customers", "/customers"),
            ("/customers/", "/customers"),
            ("//customers//42", "/customers/42"),
            ("/customers?page=2&size=50", "/customers"),
            ("/customers#top", "/customers"),
            ("  /daily-loans  ", "/daily-loans"),
            ("https://api.example.com/api/customers?x=1", "/api/customers"),
            ("/", "/"),
        ],
    )
    def test_normalization(self, endpoint, expected):
        assert normalize_endpoint(endpoint) == expected

    @pytest.mark.parametrize("endpoint", ["", "   ", None, 42])
    def test_rejects_non_strings_and_blank(self, endpoint):
        """Malformed endpoints are a programming error"""
        with pytest.raises(ValueError):
            normalize_endpoint(endpoint)


class TestResourceKey:
    """Test prefix matching"""

    def test_without_prefixes_path_is_key(self):
        assert resource_key("/daily-loans/17") == "/daily-loans/17"

    def test_prefix_matches_item_endpoint(self):
        assert resource_key("/daily-loans/17", ["/daily-loans"]) == "/daily-loans"

    def test_prefix_matches_exact_endpoint(self):
        assert resource_key("/daily-loans?status=active", ["/daily-loans"]) == "/daily-loans"

    def test_prefix_requires_segment_boundary(self):
        """'/daily-loans' must not swallow '/daily-loans-archive'"""
        assert resource_key("/daily-loans-archive", ["/daily-loans"]) == "/daily-loans-archive"

    def test_longest_prefix_wins(self):
        prefixes = ["/daily-loans", "/daily-loans/17/payments"]

        assert resource_key("/daily-loans/17/payments/3", prefixes) == "/daily-loans/17/payments"
        assert resource_key("/daily-loans/18", prefixes) == "/daily-loans"

    def test_prefixes_are_normalized(self):
        assert resource_key("/customers/9", ["customers/"]) == "/customers"
