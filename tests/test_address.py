"""Tests for address normalization and matching."""

import pytest

from deal_finder.analysis.address import AddressMatcher, house_number, normalize_address
from deal_finder.analysis.models import RegistryRecord


class TestNormalizeAddress:
    """Tests for normalize_address."""

    def test_abbreviations_and_ordinals(self):
        assert normalize_address("123 East 7th Street, Apt 4B") == "123 e 7 st"

    def test_unit_suffix_dropped(self):
        assert normalize_address("123 Main St #4B") == "123 main st"
        assert normalize_address("123 Main Street Apt 2") == "123 main st"

    def test_punctuation_stripped(self):
        assert normalize_address("123 Main St.") == "123 main st"

    def test_hyphenated_house_number_kept(self):
        assert normalize_address("37-12 30th Avenue") == "37-12 30 ave"

    def test_empty(self):
        assert normalize_address("") == ""


class TestHouseNumber:
    def test_leading_number(self):
        assert house_number(["123", "main", "st"]) == "123"

    def test_letter_suffix(self):
        assert house_number(["12a", "main", "st"]) == "12a"

    def test_no_number(self):
        assert house_number(["main", "st"]) is None


class TestAddressMatcher:
    """Tests for AddressMatcher similarity and matching."""

    @pytest.fixture
    def matcher(self):
        return AddressMatcher()

    def test_different_house_numbers_score_exactly_point_one(self, matcher):
        assert matcher.similarity("123 Main St", "456 Main St") == 0.1

    def test_different_house_numbers_ignore_other_overlap(self, matcher):
        assert matcher.similarity("123 East 7th Street", "125 East 7th Street") == 0.1

    def test_identical_after_normalization(self, matcher):
        assert matcher.similarity("123 Main Street", "123 main st.") == 1.0

    def test_same_number_boost(self, matcher):
        # {123, main, st} vs {123, main, ave}: 2/4 + 0.3
        assert matcher.similarity("123 Main St", "123 Main Ave") == pytest.approx(0.8)

    def test_no_house_numbers_plain_jaccard(self, matcher):
        assert matcher.similarity("Main St", "Main Ave") == pytest.approx(1 / 3)

    def test_empty_address(self, matcher):
        assert matcher.similarity("", "123 Main St") == 0.0

    def test_match_filters_and_sorts(self, matcher):
        records = [
            RegistryRecord(address="456 Main St", jurisdiction_code="MN"),
            RegistryRecord(address="123 Main Ave", jurisdiction_code="MN"),
            RegistryRecord(address="123 Main Street", jurisdiction_code="MN"),
        ]

        matches = matcher.match("123 Main St", records, threshold=0.6)

        assert [m.record.address for m in matches] == ["123 Main Street", "123 Main Ave"]
        assert matches[0].similarity == 1.0

    def test_best_match_none_below_threshold(self, matcher):
        records = [RegistryRecord(address="456 Main St", jurisdiction_code="MN")]
        assert matcher.best_match("123 Main St", records) is None
