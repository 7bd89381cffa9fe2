"""Store fiscal configuration lookups."""

from sqlalchemy import select

from invoicing_kernel.domain.dtos import StoreConfigSnapshot
from invoicing_kernel.models.store_fiscal_config import StoreFiscalConfig
from invoicing_kernel.selectors.base import BaseSelector


class StoreConfigSelector(BaseSelector):
    """Read-only access to store fiscal configuration."""

    def get(self, store_id: str) -> StoreConfigSnapshot | None:
        row = self.session.execute(
            select(StoreFiscalConfig).where(StoreFiscalConfig.store_id == store_id)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None
