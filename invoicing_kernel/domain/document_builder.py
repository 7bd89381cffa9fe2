"""
DocumentBuilder -- Canonical fiscal document payload construction.

Responsibility:
    Turns an order snapshot, a resolved fiscal profile and the allocated
    document number into the request body the fiscal gateway expects:
    a header (parties, dates, serial/number, branch and cost-center codes)
    plus one detail per order line.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The clock value is
    passed in; nothing here reads time, the database or the network.

Invariants enforced:
    - Order-level discount is spread across lines pro rata to line gross:
      ``lineDiscount = totalDiscount * lineGross / orderGrossTotal``.  Each
      share is rounded to cents and the largest line absorbs the residual,
      so the line discounts sum to the order discount exactly.
    - ``discountedUnitPrice = round2((lineGross - lineDiscount) / quantity)``.
    - With a zero gross total or no discount, unit prices pass through
      unchanged.
    - Same inputs always produce the same payload.

Failure modes:
    - ValueError if the order has no lines or the discount exceeds the
      gross total.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence

from invoicing_kernel.db.types import round_money
from invoicing_kernel.domain.dtos import (
    CustomerSnapshot,
    DocumentHeader,
    FiscalProfile,
    OrderLineSnapshot,
    OrderSnapshot,
    ReturnSnapshot,
)
from invoicing_kernel.domain.numbering import voucher_number

UNIT_CODE = "ADET"
VAT_INCLUDED = "Dahil"
LINE_TYPE_SERVICE = "S"
CARD_TYPE = "Cari"
DEFAULT_ORIGIN = "TR"

_ZERO = Decimal("0")


@dataclass(frozen=True)
class PricedLine:
    """One order line after discount allocation."""

    line: OrderLineSnapshot
    line_discount: Decimal
    unit_price: Decimal

    @property
    def line_net(self) -> Decimal:
        return self.unit_price * self.line.quantity


def allocate_line_discounts(
    lines: Sequence[OrderLineSnapshot],
    total_discount: Decimal,
) -> list[Decimal]:
    """
    Split an order-level discount across lines pro rata to line gross.

    Every line but one gets its share rounded to cents; the line with the
    largest gross (first one on ties) gets the remainder.

    Raises:
        ValueError: if ``lines`` is empty or the discount exceeds gross.
    """
    if not lines:
        raise ValueError("Cannot allocate a discount across zero lines")

    gross_total = sum((line.line_gross for line in lines), _ZERO)
    if total_discount == _ZERO or gross_total == _ZERO:
        return [_ZERO for _ in lines]
    if total_discount > gross_total:
        raise ValueError(
            f"Discount {total_discount} exceeds order gross total {gross_total}"
        )

    rounding_index = max(range(len(lines)), key=lambda i: (lines[i].line_gross, -i))
    shares: list[Decimal] = [_ZERO] * len(lines)
    allocated_so_far = _ZERO

    for i, line in enumerate(lines):
        if i == rounding_index:
            continue
        share = round_money(total_discount * line.line_gross / gross_total)
        shares[i] = share
        allocated_so_far += share

    shares[rounding_index] = total_discount - allocated_so_far
    return shares


def price_lines(order: OrderSnapshot) -> list[PricedLine]:
    """Apply the order discount to every line of ``order``."""
    discounts = allocate_line_discounts(order.lines, order.total_discount)
    priced: list[PricedLine] = []
    for line, discount in zip(order.lines, discounts):
        if discount == _ZERO:
            unit_price = line.unit_price
        else:
            unit_price = round_money((line.line_gross - discount) / line.quantity)
        priced.append(PricedLine(line=line, line_discount=discount, unit_price=unit_price))
    return priced


def format_address(customer: CustomerSnapshot) -> str:
    parts = [customer.address, customer.district, customer.city]
    return " ".join(p.strip() for p in parts if p and p.strip())


def _money(value: Decimal) -> str:
    # Payloads are stored in JSON columns and sent as JSON; Decimal is not
    # serializable, so amounts travel as exact decimal strings.
    return str(value)


def _iso(value: datetime | None, fallback: datetime) -> str:
    return (value or fallback).isoformat()


def _header(
    customer: CustomerSnapshot,
    profile: FiscalProfile,
    header: DocumentHeader,
    document_number: str,
    serial_prefix: str,
    currency: str,
    now: datetime,
) -> dict[str, Any]:
    return {
        "voucherNo": voucher_number(document_number, serial_prefix),
        "voucherSerial": serial_prefix,
        "edocNo": document_number,
        "documentType": profile.document_type.value,
        "exportExempt": profile.is_export_exempt,
        "cardType": CARD_TYPE,
        "cardCode": profile.customer_party_code or profile.party_code or "",
        "accountCode": profile.account_code or "",
        "taxNo": profile.tax_id,
        "taxOffice": customer.tax_office if profile.is_standard else "",
        "companyName": customer.company_name if profile.is_standard else "",
        "firstName": customer.first_name,
        "familyName": customer.last_name,
        "email": customer.email,
        "address1": format_address(customer),
        "coCode": header.company_code,
        "branchCode": header.branch_code,
        "docTraCode": header.transaction_code,
        "costCenterCode": header.cost_center_code or "",
        "whouseCode": header.warehouse_code or "",
        "curCode": currency,
        "curTra": 1,
        "docDate": now.isoformat(),
        "note1": document_number,
    }


def build_invoice_payload(
    order: OrderSnapshot,
    profile: FiscalProfile,
    header: DocumentHeader,
    document_number: str,
    now: datetime,
) -> dict[str, Any]:
    """
    Build the sales document request for ``order``.

    Args:
        order: Order snapshot (lines, customer, discount).
        profile: Resolved fiscal profile.
        header: Branch / company / transaction codes.
        document_number: Allocated number carrying ``profile.serial_prefix``.
        now: Document date.

    Returns:
        ``{"value": {...header..., "details": [...]}}``
    """
    body = _header(
        order.customer,
        profile,
        header,
        document_number,
        profile.serial_prefix,
        order.currency,
        now,
    )
    body.update(
        {
            "shippingDate": _iso(order.shipment_date or order.order_date, now),
            "gnlNote1": order.order_number,
            "gnlNote2": _iso(order.order_date, now),
            "gnlNote5": order.cargo_tracking_number,
        }
    )
    body["details"] = [
        _detail(
            line_no=i,
            sku=priced.line.sku,
            name=priced.line.name,
            quantity=priced.line.quantity,
            unit_price=priced.unit_price,
            vat_rate=priced.line.vat_rate,
            origin=priced.line.origin_country,
            currency=order.currency,
            header=header,
        )
        for i, priced in enumerate(price_lines(order), start=1)
    ]
    return {"value": body}


def build_refund_payload(
    returned: ReturnSnapshot,
    profile: FiscalProfile,
    header: DocumentHeader,
    document_number: str,
    now: datetime,
) -> dict[str, Any]:
    """Build the expense voucher request for a processed return."""
    if not returned.lines:
        raise ValueError(f"Return {returned.return_id} has no lines")
    body = _header(
        returned.customer,
        profile,
        header,
        document_number,
        profile.serial_prefix,
        returned.currency,
        now,
    )
    body.update(
        {
            "shippingDate": now.isoformat(),
            "gnlNote1": returned.order_number,
            "gnlNote3": f"RETURN {returned.return_id}",
            "gnlNote5": returned.cargo_tracking_number,
        }
    )
    body["details"] = [
        _detail(
            line_no=i,
            sku=line.sku,
            name=line.name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            vat_rate=line.vat_rate,
            origin="",
            currency=returned.currency,
            header=header,
        )
        for i, line in enumerate(returned.lines, start=1)
    ]
    return {"value": body}


def _detail(
    *,
    line_no: int,
    sku: str,
    name: str,
    quantity: int,
    unit_price: Decimal,
    vat_rate: Decimal,
    origin: str,
    currency: str,
    header: DocumentHeader,
) -> dict[str, Any]:
    return {
        "lineNo": line_no,
        "lineType": LINE_TYPE_SERVICE,
        "dcardCode": sku,
        "itemNameManual": name,
        "qty": quantity,
        "qtyPrm": quantity,
        "unitCode": UNIT_CODE,
        "unitPrice": _money(unit_price),
        "vatRate": _money(vat_rate),
        "vatStatus": VAT_INCLUDED,
        "curCode": currency,
        "costCenterCode": header.cost_center_code or "",
        "whouseCode": header.warehouse_code or "",
        "note1": f"Origin: {origin}" if origin else "",
        "note2": origin or DEFAULT_ORIGIN,
    }
