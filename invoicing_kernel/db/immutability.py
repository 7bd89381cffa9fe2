"""
ORM-Level Immutability Enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable                   | Why
------------------|----------------------------------|-------------------------------
Invoice           | After status = SUCCESS           | Issued fiscal document
GatewayCallLog    | ALWAYS (from creation)           | Append-only audit trail
InvoiceEvent      | ALWAYS (from creation)           | Append-only history

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
Listeners intercept them and raise ImmutabilityViolationError, aborting the
flush before any SQL is sent:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() --> ImmutabilityViolationError

An issued invoice may still have its updated_at refreshed; every other
column is frozen.  The PENDING/ERROR -> SUCCESS transition itself is allowed
because the check looks at the status value *before* the flush.

===============================================================================
USAGE
===============================================================================

    from invoicing_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from invoicing_kernel.exceptions import ImmutabilityViolationError
from invoicing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_MUTABLE_AUDIT_COLUMNS = frozenset({"updated_at"})

_registered = False


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _was_issued(target) -> bool:
    """True when the row was already SUCCESS before this flush."""
    from invoicing_kernel.models.invoice import InvoiceStatus

    history = get_history(target, "status")
    if history.deleted:
        previous = history.deleted[0]
    elif history.unchanged:
        previous = history.unchanged[0]
    else:
        return False
    return previous in (InvoiceStatus.SUCCESS, InvoiceStatus.SUCCESS.value)


def _check_invoice_immutability(mapper, connection, target):
    """Block any change to fiscal fields of an issued invoice."""
    if not _was_issued(target):
        return

    state = inspect(target)
    changed = [
        attr.key
        for attr in state.attrs
        if attr.key not in _MUTABLE_AUDIT_COLUMNS and attr.history.has_changes()
    ]
    if changed:
        _blocked(
            "Invoice",
            str(target.id),
            "UPDATE",
            f"Issued invoices are immutable (attempted change: {', '.join(sorted(changed))})",
        )


def _check_invoice_delete(mapper, connection, target):
    """Block deletion of an issued invoice."""
    if _was_issued(target):
        _blocked(
            "Invoice",
            str(target.id),
            "DELETE",
            "Issued invoices cannot be deleted",
        )


def _check_call_log_immutability(mapper, connection, target):
    _blocked(
        "GatewayCallLog",
        str(target.id),
        "UPDATE",
        "Gateway call logs are append-only",
    )


def _check_call_log_delete(mapper, connection, target):
    _blocked(
        "GatewayCallLog",
        str(target.id),
        "DELETE",
        "Gateway call logs are append-only",
    )


def _check_invoice_event_immutability(mapper, connection, target):
    _blocked(
        "InvoiceEvent",
        str(target.id),
        "UPDATE",
        "Invoice events are append-only",
    )


def _check_invoice_event_delete(mapper, connection, target):
    _blocked(
        "InvoiceEvent",
        str(target.id),
        "DELETE",
        "Invoice events are append-only",
    )


def _listeners():
    from invoicing_kernel.models.gateway_call_log import GatewayCallLog
    from invoicing_kernel.models.invoice import Invoice
    from invoicing_kernel.models.invoice_event import InvoiceEvent

    return [
        (Invoice, "before_update", _check_invoice_immutability),
        (Invoice, "before_delete", _check_invoice_delete),
        (GatewayCallLog, "before_update", _check_call_log_immutability),
        (GatewayCallLog, "before_delete", _check_call_log_delete),
        (InvoiceEvent, "before_update", _check_invoice_event_immutability),
        (InvoiceEvent, "before_delete", _check_invoice_event_delete),
    ]


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners (idempotent).

    Call after the models are importable and before any database
    operations begin.
    """
    global _registered
    if _registered:
        return
    for target, event_name, listener_fn in _listeners():
        event.listen(target, event_name, listener_fn)
    _registered = True


def unregister_immutability_listeners() -> None:
    """Remove immutability enforcement event listeners. TESTS ONLY."""
    global _registered
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
    _registered = False
