"""
Tax identity rules.

Customers arrive with two candidate identifiers: a national id (11 digits for
individuals) and a tax number (10 digits for companies).  Marketplaces fill
unknown values with sentinels, so either field may be a placeholder.
"""

import re

# Generic recipient tax id printed on simplified receipts.
RECEIPT_TAX_ID = "11111111111"

# Generic recipient tax id printed on export-exempt documents.
EXPORT_TAX_ID = "2222222222"

DUMMY_TAX_IDS = frozenset({RECEIPT_TAX_ID, EXPORT_TAX_ID})

MIN_TAX_ID_LENGTH = 10

_NON_DIGITS = re.compile(r"\D")


def is_dummy_tax_id(value: str | None) -> bool:
    """Empty, a known sentinel, or too short to be a real identifier."""
    if not value:
        return True
    value = value.strip()
    return value in DUMMY_TAX_IDS or len(value) < MIN_TAX_ID_LENGTH


def effective_tax_id(national_id: str | None, tax_number: str | None) -> str:
    """
    Pick the identifier to look up.

    The national id wins unless it is a dummy, then the tax number.  When
    both are dummies, whichever is non-empty is returned so the caller can
    still print something.
    """
    national_id = (national_id or "").strip()
    tax_number = (tax_number or "").strip()
    if not is_dummy_tax_id(national_id):
        return national_id
    if not is_dummy_tax_id(tax_number):
        return tax_number
    return tax_number or national_id


def digits_only(value: str | None) -> str:
    return _NON_DIGITS.sub("", value or "")


def lookup_candidate(national_id: str | None, tax_number: str | None) -> str | None:
    """
    Digits-only identifier eligible for a registry lookup, or None.

    Dummies and identifiers with fewer than ten digits never trigger a
    lookup.
    """
    candidate = effective_tax_id(national_id, tax_number)
    if is_dummy_tax_id(candidate):
        return None
    cleaned = digits_only(candidate)
    if len(cleaned) < MIN_TAX_ID_LENGTH or cleaned in DUMMY_TAX_IDS:
        return None
    return cleaned
