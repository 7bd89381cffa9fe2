"""
Module: invoicing_kernel.models.document_series
Responsibility: One anchor row per serial prefix and year, used purely as the
    row lock that serializes document number allocation.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - UNIQUE on series_key (``{prefix}{year}``): concurrent first-use inserts
      collide and the loser re-reads the winner's row.
    - The row carries no counter.  The next number is always derived from
      the highest existing invoices.document_number in the series.
"""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from invoicing_kernel.db.base import Base


def series_key(serial_prefix: str, year: int) -> str:
    return f"{serial_prefix}{year:04d}"


class DocumentSeries(Base):
    """Lock anchor for one numbering series."""

    __tablename__ = "document_series"

    series_key: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    serial_prefix: Mapped[str] = mapped_column(String(16), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<DocumentSeries {self.series_key}>"
