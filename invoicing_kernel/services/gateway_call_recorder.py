"""
GatewayCallRecorder -- persists gateway calls to the append-only call log.

Responsibility:
    Audit-log callback handed to the gateway client.  Every call, success or
    failure, becomes one gateway_call_logs row written in its OWN short
    transaction, so the log survives a rollback of the issuance around it.

Failure modes:
    - A database error while recording is logged and swallowed; the issuance
      outcome is unaffected.
"""

from sqlalchemy.orm import Session, sessionmaker

from invoicing_kernel.db.engine import session_scope
from invoicing_kernel.domain.dtos import GatewayCall
from invoicing_kernel.logging_config import get_logger
from invoicing_kernel.models.gateway_call_log import GatewayCallLog

logger = get_logger("services.gateway_call_recorder")


class GatewayCallRecorder:
    """Callable recorder: ``recorder(call)`` writes one GatewayCallLog row."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def __call__(self, call: GatewayCall) -> None:
        try:
            with session_scope(self._session_factory) as session:
                session.add(
                    GatewayCallLog(
                        provider=call.provider,
                        call_type=call.call_type,
                        endpoint=call.endpoint,
                        method=call.method,
                        request_body=call.request_body,
                        response_body=call.response_body,
                        status_code=call.status_code,
                        is_success=call.is_success,
                        error_message=call.error_message,
                        duration_ms=call.duration_ms,
                        invoice_id=call.invoice_id,
                        order_id=call.order_id,
                        created_at=call.occurred_at,
                    )
                )
        except Exception:
            logger.error(
                "gateway_call_record_failed",
                extra={"call_type": call.call_type, "endpoint": call.endpoint},
                exc_info=True,
            )
