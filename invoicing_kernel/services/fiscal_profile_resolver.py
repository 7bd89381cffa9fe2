"""
FiscalProfileResolver -- decides the document tier and counterpart codes.

Responsibility:
    I/O shell around ``domain.fiscal_profile``.  Performs the registered-
    recipient lookup and, for registered customers, upserts the customer
    party at the fiscal platform before handing back a FiscalProfile.

Architecture position:
    Kernel > Services.  Holds no database session: it works on snapshots so
    the lifecycle manager can call it outside any transaction (the lookup
    and upsert are network calls).

Invariants enforced:
    - Fail-open registry: any lookup error resolves to "not registered",
      which selects the simplified receipt.  A flaky registry can never
      produce a standard invoice.
    - Dummy or short tax ids never trigger a lookup.
    - Party upsert failures never block issuance; "already exists" is a
      normal outcome.

Failure modes:
    - None surfaced.  Lookup and upsert errors are logged at WARNING.
"""

from invoicing_kernel.domain.document_builder import format_address
from invoicing_kernel.domain.dtos import (
    CustomerParty,
    FiscalProfile,
    OrderSnapshot,
    StoreConfigSnapshot,
)
from invoicing_kernel.domain.fiscal_profile import (
    DEFAULT_RULES,
    FiscalRules,
    export_profile,
    qualifies_for_export,
    receipt_profile,
    standard_profile,
)
from invoicing_kernel.domain.tax_identity import lookup_candidate
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.ports import PartyRegistrar, RegistryClient

logger = get_logger("services.fiscal_profile_resolver")


def is_registered_recipient(registry: RegistryClient | None, tax_id: str | None) -> bool:
    """
    Ask the registry whether ``tax_id`` is a registered invoice recipient.

    Every failure (missing registry, dummy id, exception from the lookup)
    collapses to ``False``.
    """
    if registry is None or not tax_id:
        return False
    try:
        return bool(registry.is_registered(tax_id))
    except Exception as exc:
        logger.warning(
            "registry_lookup_failed",
            extra={
                "tax_id_suffix": tax_id[-4:],
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
        )
        return False


class FiscalProfileResolver:
    """
    Resolves the FiscalProfile of one order.

    Contract:
        ``resolve`` is deterministic given the order, the store snapshot
        and the registry verdict.

    Non-goals:
        - Does NOT advance the store's customer party counter; the
          lifecycle manager does that after the document is issued.
    """

    def __init__(
        self,
        registry: RegistryClient | None,
        party_registrar: PartyRegistrar | None = None,
        rules: FiscalRules = DEFAULT_RULES,
    ):
        self._registry = registry
        self._party_registrar = party_registrar
        self._rules = rules

    def resolve(
        self,
        order: OrderSnapshot,
        config: StoreConfigSnapshot,
        bulk: bool = False,
    ) -> FiscalProfile:
        if qualifies_for_export(order, config):
            profile = export_profile(order, config, bulk)
            self._log_resolved(order, profile, registered=False)
            return profile

        candidate = lookup_candidate(order.customer.national_id, order.customer.tax_number)
        registered = candidate is not None and is_registered_recipient(self._registry, candidate)

        if registered:
            card_code = self._upsert_customer_party(order, config, candidate)
            profile = standard_profile(order, config, bulk, card_code, self._rules)
        else:
            profile = receipt_profile(order, config, bulk, self._rules)

        self._log_resolved(order, profile, registered=registered)
        return profile

    def is_registered_recipient(self, tax_id: str | None) -> bool:
        return is_registered_recipient(self._registry, tax_id)

    def _upsert_customer_party(
        self,
        order: OrderSnapshot,
        config: StoreConfigSnapshot,
        tax_id: str,
    ) -> str | None:
        """Create the customer party; return its card code or None on failure."""
        if self._party_registrar is None:
            return None

        customer = order.customer
        party = CustomerParty(
            card_code=config.next_customer_party_code,
            name=customer.company_name or customer.full_name,
            tax_id=tax_id,
            tax_office=customer.tax_office,
            email=customer.email,
            address=format_address(customer),
            city=customer.city,
            district=customer.district,
            phone=customer.phone,
        )
        try:
            outcome = self._party_registrar.upsert_customer_party(party)
        except Exception as exc:
            logger.warning(
                "customer_party_upsert_failed",
                extra={
                    "order_id": order.order_id,
                    "card_code": party.card_code,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            return None

        logger.info(
            "customer_party_upserted",
            extra={"order_id": order.order_id, "card_code": party.card_code, "outcome": outcome},
        )
        return party.card_code

    def _log_resolved(self, order: OrderSnapshot, profile: FiscalProfile, registered: bool) -> None:
        logger.info(
            "fiscal_profile_resolved",
            extra={
                "order_id": order.order_id,
                "document_type": profile.document_type.value,
                "serial_prefix": profile.serial_prefix,
                "party_code": profile.party_code,
                "registered": registered,
            },
        )
