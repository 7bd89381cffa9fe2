"""Effective tax id selection and registry lookup eligibility."""

import pytest

from invoicing_kernel.domain.tax_identity import (
    EXPORT_TAX_ID,
    RECEIPT_TAX_ID,
    digits_only,
    effective_tax_id,
    is_dummy_tax_id,
    lookup_candidate,
)


class TestDummyIds:
    @pytest.mark.parametrize("value", [None, "", "   ", RECEIPT_TAX_ID, EXPORT_TAX_ID, "123456789"])
    def test_dummy(self, value):
        assert is_dummy_tax_id(value)

    @pytest.mark.parametrize("value", ["1234567890", "12345678901"])
    def test_real(self, value):
        assert not is_dummy_tax_id(value)


class TestEffectiveTaxId:
    def test_national_id_wins(self):
        assert effective_tax_id("12345678901", "9876543210") == "12345678901"

    def test_falls_back_to_tax_number(self):
        assert effective_tax_id(RECEIPT_TAX_ID, "9876543210") == "9876543210"

    def test_both_dummy_prefers_non_empty_tax_number(self):
        assert effective_tax_id("123", "456") == "456"

    def test_both_dummy_uses_national_id_when_tax_number_empty(self):
        assert effective_tax_id(RECEIPT_TAX_ID, "") == RECEIPT_TAX_ID


class TestLookupCandidate:
    def test_strips_non_digits(self):
        assert lookup_candidate("123 456 789 01", None) == "12345678901"

    def test_dummy_never_looked_up(self):
        assert lookup_candidate(RECEIPT_TAX_ID, "") is None

    def test_short_after_cleaning_never_looked_up(self):
        assert lookup_candidate("12-34-56-78-9", None) is None

    def test_tax_number_used_when_national_id_dummy(self):
        assert lookup_candidate("", "9876543210") == "9876543210"

    def test_digits_only(self):
        assert digits_only("TR-12.34") == "1234"
        assert digits_only(None) == ""
