"""
Unit Tests: DeviceAllowlist

Membership must not depend on casing or surrounding whitespace.
"""
import pytest

from otasign.allowlist import DeviceAllowlist, normalize_udid


class TestNormalization:

    def test_trims_and_uppercases(self):
        assert normalize_udid("  00008030-001a2b3c4d5e6f70\n") == "00008030-001A2B3C4D5E6F70"

    @pytest.mark.parametrize("variant", [
        "abc-123",
        "ABC-123",
        "  aBc-123  ",
        "\tabc-123\n",
    ])
    def test_membership_matches_normalized_form(self, variant):
        allow = DeviceAllowlist(["ABC-123"])
        assert (variant in allow) == (normalize_udid(variant) in allow)
        assert variant in allow

    def test_unknown_device_rejected(self):
        allow = DeviceAllowlist(["ABC-123"])
        assert "ABC-124" not in allow
        assert "" not in allow

    def test_non_string_not_member(self):
        allow = DeviceAllowlist(["ABC-123"])
        assert None not in allow
        assert 123 not in allow


class TestConstruction:

    def test_from_csv_drops_empty_entries(self):
        allow = DeviceAllowlist.from_csv(" a1 ,, b2 ,  ,")
        assert len(allow) == 2
        assert list(allow) == ["A1", "B2"]

    def test_duplicates_collapse(self):
        allow = DeviceAllowlist.from_csv("a1,A1, a1 ")
        assert len(allow) == 1

    def test_empty_csv_gives_empty_allowlist(self):
        assert len(DeviceAllowlist.from_csv(" , ")) == 0
