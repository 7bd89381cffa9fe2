"""
Fiscal profile rules -- pure branch logic of the fiscal profile resolver.

Responsibility:
    Given an order, its store's fiscal settings and the registry verdict,
    pick the document tier, serial prefix and counterpart codes.  The
    registry lookup and party upsert are I/O and live in
    ``services.fiscal_profile_resolver``; everything here is deterministic.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Decision order (first match wins):
    1. Export-exempt: store supports it, order is export, store has it on.
    2. Registered recipient: standard invoice with the real tax id.
    3. Otherwise: simplified receipt with the generic tax id.
"""

from dataclasses import dataclass

from invoicing_kernel.domain.dtos import (
    DocumentType,
    FiscalProfile,
    OrderSnapshot,
    StoreConfigSnapshot,
)
from invoicing_kernel.domain.tax_identity import (
    EXPORT_TAX_ID,
    RECEIPT_TAX_ID,
    digits_only,
    effective_tax_id,
)


@dataclass(frozen=True)
class FiscalRules:
    """
    Platform-wide rules that are not per-store configuration.

    bank_transfer_channels: channels whose orders may carry a bank-transfer
        payment method that switches the counterpart codes.
    bank_transfer_keywords: case-insensitive substrings of the payment
        method that mark a bank-transfer order.
    """

    bank_transfer_channels: frozenset[str] = frozenset({"ikas", "website"})
    bank_transfer_keywords: tuple[str, ...] = ("havale", "eft", "transfer", "wire")


DEFAULT_RULES = FiscalRules()


def is_bank_transfer(
    order: OrderSnapshot,
    config: StoreConfigSnapshot,
    rules: FiscalRules = DEFAULT_RULES,
) -> bool:
    if config.channel.lower() not in rules.bank_transfer_channels:
        return False
    method = (order.payment_method or "").lower()
    return any(keyword in method for keyword in rules.bank_transfer_keywords)


def qualifies_for_export(order: OrderSnapshot, config: StoreConfigSnapshot) -> bool:
    return (
        config.supports_export_exempt
        and order.is_export
        and config.export_exempt_enabled
        and config.export_serials is not None
    )


def export_profile(
    order: OrderSnapshot,
    config: StoreConfigSnapshot,
    bulk: bool,
) -> FiscalProfile:
    """Export-exempt profile: generic tax id, party code by destination."""
    country = (order.destination_country or "").upper()
    party_code = config.export_party_codes.get(country) or config.export_parties.party_code
    return FiscalProfile(
        document_type=DocumentType.EXPORT_EXEMPT,
        serial_prefix=config.export_serials.pick(bulk),
        party_code=party_code,
        account_code=config.export_parties.account_code,
        is_export_exempt=True,
        tax_id=EXPORT_TAX_ID,
    )


def standard_profile(
    order: OrderSnapshot,
    config: StoreConfigSnapshot,
    bulk: bool,
    customer_party_code: str | None,
    rules: FiscalRules = DEFAULT_RULES,
) -> FiscalProfile:
    """Registered recipient: real tax id and the store's invoice codes."""
    party_code, account_code = config.invoice_parties.pick(
        is_bank_transfer(order, config, rules)
    )
    tax_id = digits_only(
        effective_tax_id(order.customer.national_id, order.customer.tax_number)
    )
    return FiscalProfile(
        document_type=DocumentType.STANDARD_INVOICE,
        serial_prefix=config.invoice_serials.pick(bulk),
        party_code=party_code,
        account_code=account_code,
        is_export_exempt=False,
        tax_id=tax_id,
        customer_party_code=customer_party_code,
    )


def receipt_profile(
    order: OrderSnapshot,
    config: StoreConfigSnapshot,
    bulk: bool,
    rules: FiscalRules = DEFAULT_RULES,
) -> FiscalProfile:
    """Unregistered recipient: generic tax id and the store's receipt codes."""
    party_code, account_code = config.receipt_parties.pick(
        is_bank_transfer(order, config, rules)
    )
    return FiscalProfile(
        document_type=DocumentType.SIMPLIFIED_RECEIPT,
        serial_prefix=config.receipt_serials.pick(bulk),
        party_code=party_code,
        account_code=account_code,
        is_export_exempt=False,
        tax_id=RECEIPT_TAX_ID,
    )


def refund_serial_for(profile_type: DocumentType, config: StoreConfigSnapshot) -> str:
    """
    Serial prefix for an expense voucher of the given tier.

    Falls back to the tier's single serial when no refund serial is set.
    """
    if profile_type == DocumentType.EXPORT_EXEMPT and config.export_serials is not None:
        serials = config.export_serials
    elif profile_type == DocumentType.STANDARD_INVOICE:
        serials = config.invoice_serials
    else:
        serials = config.receipt_serials
    return serials.refund or serials.single
