"""
Pure fiscal profile rules.

Covers the export test, bank-transfer detection, the three profile
builders and refund serial selection.  Registry I/O is tested in
tests/services/test_fiscal_profile_resolver.py.
"""

from dataclasses import replace

from invoicing_kernel.domain.dtos import DocumentType, SerialSet
from invoicing_kernel.domain.fiscal_profile import (
    FiscalRules,
    export_profile,
    is_bank_transfer,
    qualifies_for_export,
    receipt_profile,
    refund_serial_for,
    standard_profile,
)
from invoicing_kernel.domain.tax_identity import EXPORT_TAX_ID, RECEIPT_TAX_ID
from tests.conftest import make_customer, make_order, store_config_row

CONFIG = store_config_row().to_dto()
EXPORT_CONFIG = store_config_row(supports_export_exempt=True, export_exempt_enabled=True).to_dto()


class TestExportQualification:
    def test_requires_all_three_flags(self):
        order = make_order(is_export=True, destination_country="DE")
        assert qualifies_for_export(order, EXPORT_CONFIG)
        assert not qualifies_for_export(order, CONFIG)
        assert not qualifies_for_export(make_order(), EXPORT_CONFIG)

    def test_disabled_store_does_not_qualify(self):
        config = store_config_row(supports_export_exempt=True, export_exempt_enabled=False).to_dto()
        assert not qualifies_for_export(make_order(is_export=True), config)

    def test_store_without_export_serials_does_not_qualify(self):
        config = replace(EXPORT_CONFIG, export_serials=None)
        assert not qualifies_for_export(make_order(is_export=True), config)


class TestExportProfile:
    def test_party_code_by_destination(self):
        profile = export_profile(make_order(is_export=True, destination_country="de"), EXPORT_CONFIG, bulk=False)
        assert profile.document_type == DocumentType.EXPORT_EXEMPT
        assert profile.party_code == "120.EX.DE"
        assert profile.tax_id == EXPORT_TAX_ID
        assert profile.is_export_exempt
        assert profile.serial_prefix == "EXA"

    def test_unknown_destination_falls_back(self):
        profile = export_profile(make_order(is_export=True, destination_country="FR"), EXPORT_CONFIG, bulk=True)
        assert profile.party_code == "120.EX"
        assert profile.serial_prefix == "EXB"


class TestBankTransfer:
    def test_keyword_on_transfer_channel(self):
        assert is_bank_transfer(make_order(payment_method="Havale/EFT"), CONFIG)

    def test_other_channel_ignores_keyword(self):
        config = store_config_row(channel="trendyol").to_dto()
        assert not is_bank_transfer(make_order(payment_method="havale"), config)

    def test_rules_are_injectable(self):
        rules = FiscalRules(bank_transfer_channels=frozenset({"trendyol"}), bank_transfer_keywords=("iban",))
        config = store_config_row(channel="Trendyol").to_dto()
        assert is_bank_transfer(make_order(payment_method="IBAN"), config, rules)
        assert not is_bank_transfer(make_order(payment_method="havale"), config, rules)


class TestStandardAndReceiptProfiles:
    def test_standard_uses_real_tax_id_and_invoice_codes(self):
        order = make_order(customer=make_customer(national_id="123 456 789 01"))
        profile = standard_profile(order, CONFIG, bulk=False, customer_party_code="120.C.1")
        assert profile.document_type == DocumentType.STANDARD_INVOICE
        assert profile.tax_id == "12345678901"
        assert (profile.party_code, profile.account_code) == ("120.01", "600.01")
        assert profile.customer_party_code == "120.C.1"
        assert profile.serial_prefix == "EMA"

    def test_standard_bank_transfer_override(self):
        order = make_order(payment_method="havale", customer=make_customer(national_id="12345678901"))
        profile = standard_profile(order, CONFIG, bulk=True, customer_party_code=None)
        assert (profile.party_code, profile.account_code) == ("120.02", "600.02")
        assert profile.serial_prefix == "EMB"

    def test_receipt_uses_generic_tax_id(self):
        profile = receipt_profile(make_order(), CONFIG, bulk=False)
        assert profile.document_type == DocumentType.SIMPLIFIED_RECEIPT
        assert profile.tax_id == RECEIPT_TAX_ID
        assert (profile.party_code, profile.account_code) == ("120.90", "600.90")
        assert profile.serial_prefix == "EAR"
        assert profile.customer_party_code is None

    def test_receipt_bank_transfer_override(self):
        profile = receipt_profile(make_order(payment_method="EFT"), CONFIG, bulk=True)
        assert (profile.party_code, profile.account_code) == ("120.91", "600.91")
        assert profile.serial_prefix == "EEA"

    def test_transfer_override_falls_back_to_plain_codes(self):
        config = store_config_row(receipt_transfer_party_code=None, receipt_transfer_account_code=None).to_dto()
        profile = receipt_profile(make_order(payment_method="havale"), config, bulk=False)
        assert (profile.party_code, profile.account_code) == ("120.90", "600.90")

    def test_bulk_without_bulk_serial_uses_single(self):
        config = replace(CONFIG, receipt_serials=SerialSet(single="EAR"))
        assert receipt_profile(make_order(), config, bulk=True).serial_prefix == "EAR"


class TestRefundSerial:
    def test_per_tier(self):
        assert refund_serial_for(DocumentType.STANDARD_INVOICE, EXPORT_CONFIG) == "EIA"
        assert refund_serial_for(DocumentType.SIMPLIFIED_RECEIPT, EXPORT_CONFIG) == "ERA"
        assert refund_serial_for(DocumentType.EXPORT_EXEMPT, EXPORT_CONFIG) == "EXR"

    def test_falls_back_to_single_serial(self):
        config = replace(CONFIG, receipt_serials=SerialSet(single="EAR", bulk="EEA"))
        assert refund_serial_for(DocumentType.SIMPLIFIED_RECEIPT, config) == "EAR"
