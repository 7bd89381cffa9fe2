"""
StoreConfigService -- the one write the core makes to store configuration.

Responsibility:
    Advances the store's customer party counter after a standard invoice
    has been issued with the card code derived from it.

Invariants enforced:
    - The counter row is read with ``SELECT ... FOR UPDATE``.
    - Compare-and-increment: the counter only moves when the card code the
      invoice used is the code the counter currently points at, so two
      issuances that shared a code advance it once.
"""

from sqlalchemy import select

from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.store_fiscal_config import StoreFiscalConfig
from invoicing_kernel.services.base import BaseService

logger = get_logger("services.store_config")


class StoreConfigService(BaseService):
    """Flush-only writer for StoreFiscalConfig."""

    def advance_customer_party_seq(self, store_id: str, used_card_code: str) -> bool:
        """
        Advance the counter if ``used_card_code`` is its current value.

        Returns:
            True when the counter moved.
        """
        config = self.session.execute(
            select(StoreFiscalConfig)
            .where(StoreFiscalConfig.store_id == store_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if config is None:
            return False

        current_code = f"{config.customer_party_prefix}{config.next_customer_party_seq}"
        if current_code != used_card_code:
            logger.info(
                "customer_party_seq_already_advanced",
                extra={"store_id": store_id, "used": used_card_code, "current": current_code},
            )
            return False

        config.next_customer_party_seq += 1
        self.session.flush()
        logger.info(
            "customer_party_seq_advanced",
            extra={"store_id": store_id, "next_seq": config.next_customer_party_seq},
        )
        return True
