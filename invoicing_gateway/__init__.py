"""HTTP adapter for the fiscal document platform."""

from invoicing_gateway.client import (
    PARTY_CREATED,
    PARTY_EXISTS,
    FiscalGatewayClient,
)
from invoicing_gateway.redaction import SENSITIVE_FIELDS, redact

__all__ = [
    "FiscalGatewayClient",
    "PARTY_CREATED",
    "PARTY_EXISTS",
    "SENSITIVE_FIELDS",
    "redact",
]
