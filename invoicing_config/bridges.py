"""
Config -> Kernel bridges.

Functions that turn ``InvoicingSettings`` into wired kernel objects.  They
live here because the kernel must NEVER import ``invoicing_config``.

Usage:
    from invoicing_config import load_settings
    from invoicing_config.bridges import build_lifecycle_manager

    settings = load_settings("invoicing.yaml")
    manager = build_lifecycle_manager(settings, order_source, notifier)
"""

from __future__ import annotations

from sqlalchemy.orm import Session, sessionmaker

from invoicing_config.settings import InvoicingSettings
from invoicing_gateway.client import FiscalGatewayClient
from invoicing_kernel.db.engine import get_session_factory, init_engine_from_url
from invoicing_kernel.db.immutability import register_immutability_listeners
from invoicing_kernel.domain.clock import Clock
from invoicing_kernel.logging_config import configure_logging
from invoicing_kernel.ports import MarketplaceNotifier, OrderSource
from invoicing_kernel.services.gateway_call_recorder import GatewayCallRecorder
from invoicing_kernel.services.invoice_lifecycle import InvoiceLifecycleManager


def configure_logging_from_settings(settings: InvoicingSettings) -> None:
    configure_logging(level=settings.issuance.log_level)


def build_session_factory(settings: InvoicingSettings) -> sessionmaker[Session]:
    """Initialize the module-level engine and arm the immutability listeners."""
    db = settings.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
    )
    register_immutability_listeners()
    return get_session_factory()


def build_gateway_client(
    settings: InvoicingSettings,
    session_factory: sessionmaker[Session] | None = None,
    clock: Clock | None = None,
) -> FiscalGatewayClient:
    """Gateway client whose calls are written to gateway_call_logs."""
    recorder = GatewayCallRecorder(session_factory) if session_factory is not None else None
    return FiscalGatewayClient(settings.gateway, call_recorder=recorder, clock=clock)


def build_lifecycle_manager(
    settings: InvoicingSettings,
    order_source: OrderSource,
    notifier: MarketplaceNotifier | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    gateway: FiscalGatewayClient | None = None,
    clock: Clock | None = None,
) -> InvoiceLifecycleManager:
    """
    Wire a lifecycle manager from settings.

    The gateway client doubles as registry and party registrar.
    """
    configure_logging_from_settings(settings)
    if session_factory is None:
        session_factory = build_session_factory(settings)
    if gateway is None:
        gateway = build_gateway_client(settings, session_factory, clock)

    return InvoiceLifecycleManager(
        session_factory,
        order_source,
        gateway,
        registry=gateway,
        notifier=notifier,
        clock=clock,
        party_registrar=gateway,
        rules=settings.fiscal_rules.to_rules(),
        lock_timeout_ms=settings.database.lock_timeout_ms,
        max_retries=settings.issuance.max_retries,
    )
