"""
Module: invoicing_kernel.models.store_fiscal_config
Responsibility: ORM persistence for per-store fiscal settings: serial prefixes
    per document tier, counterpart party/account codes, export-exempt flags
    and the customer party counter.
Architecture position: Kernel > Models.  May import from db/ and domain/dtos.

Invariants enforced:
    - One configuration per store (UNIQUE on store_id).
    - The core mutates only next_customer_party_seq, and only under a row
      lock (see StoreConfigService.advance_customer_party_seq).
"""

from typing import Any

from sqlalchemy import JSON, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_kernel.db.base import TrackedBase
from invoicing_kernel.domain.dtos import PartyCodes, SerialSet, StoreConfigSnapshot


class StoreFiscalConfig(TrackedBase):
    """Fiscal settings for one sales channel (store)."""

    __tablename__ = "store_fiscal_configs"

    store_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    channel: Mapped[str] = mapped_column(String(32), nullable=False)
    invoice_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Header codes
    company_code: Mapped[str] = mapped_column(String(64), nullable=False)
    branch_code: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_code: Mapped[str] = mapped_column(String(64), nullable=False)
    cost_center_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    warehouse_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Standard invoice tier
    invoice_serial: Mapped[str] = mapped_column(String(16), nullable=False)
    invoice_bulk_serial: Mapped[str | None] = mapped_column(String(16), nullable=True)
    invoice_refund_serial: Mapped[str | None] = mapped_column(String(16), nullable=True)
    invoice_party_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invoice_account_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invoice_transfer_party_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    invoice_transfer_account_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Simplified receipt tier
    receipt_serial: Mapped[str] = mapped_column(String(16), nullable=False)
    receipt_bulk_serial: Mapped[str | None] = mapped_column(String(16), nullable=True)
    receipt_refund_serial: Mapped[str | None] = mapped_column(String(16), nullable=True)
    receipt_party_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    receipt_account_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    receipt_transfer_party_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    receipt_transfer_account_code: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Export-exempt tier
    supports_export_exempt: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    export_exempt_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    export_serial: Mapped[str | None] = mapped_column(String(16), nullable=True)
    export_bulk_serial: Mapped[str | None] = mapped_column(String(16), nullable=True)
    export_refund_serial: Mapped[str | None] = mapped_column(String(16), nullable=True)
    export_transaction_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    export_party_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    export_account_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # Destination country (ISO alpha-2) -> party code
    export_party_codes: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    # Customer party counter (owned by the core)
    customer_party_prefix: Mapped[str] = mapped_column(
        String(32), nullable=False, default="120"
    )
    next_customer_party_seq: Mapped[int] = mapped_column(
        Integer, nullable=False, default=1
    )

    def __repr__(self) -> str:
        return f"<StoreFiscalConfig {self.store_id} ({self.channel})>"

    def to_dto(self) -> StoreConfigSnapshot:
        export_serials = None
        if self.export_serial:
            export_serials = SerialSet(
                single=self.export_serial,
                bulk=self.export_bulk_serial,
                refund=self.export_refund_serial,
            )
        return StoreConfigSnapshot(
            store_id=self.store_id,
            channel=self.channel,
            invoice_enabled=bool(self.invoice_enabled),
            company_code=self.company_code,
            branch_code=self.branch_code,
            transaction_code=self.transaction_code,
            cost_center_code=self.cost_center_code,
            warehouse_code=self.warehouse_code,
            invoice_serials=SerialSet(
                single=self.invoice_serial,
                bulk=self.invoice_bulk_serial,
                refund=self.invoice_refund_serial,
            ),
            receipt_serials=SerialSet(
                single=self.receipt_serial,
                bulk=self.receipt_bulk_serial,
                refund=self.receipt_refund_serial,
            ),
            export_serials=export_serials,
            invoice_parties=PartyCodes(
                party_code=self.invoice_party_code,
                account_code=self.invoice_account_code,
                transfer_party_code=self.invoice_transfer_party_code,
                transfer_account_code=self.invoice_transfer_account_code,
            ),
            receipt_parties=PartyCodes(
                party_code=self.receipt_party_code,
                account_code=self.receipt_account_code,
                transfer_party_code=self.receipt_transfer_party_code,
                transfer_account_code=self.receipt_transfer_account_code,
            ),
            export_parties=PartyCodes(
                party_code=self.export_party_code,
                account_code=self.export_account_code,
            ),
            export_party_codes=dict(self.export_party_codes or {}),
            export_transaction_code=self.export_transaction_code,
            supports_export_exempt=bool(self.supports_export_exempt),
            export_exempt_enabled=bool(self.export_exempt_enabled),
            customer_party_prefix=self.customer_party_prefix or "",
            next_customer_party_seq=self.next_customer_party_seq or 1,
        )
