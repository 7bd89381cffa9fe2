"""
invoicing_config -- runtime settings for the invoicing service.

Responsibility:
    ``load_settings()`` is the one place configuration files and
    environment variables are read.  It returns an ``InvoicingSettings``
    aggregate of frozen dataclasses.

Architecture position:
    Configuration -- sits above ``invoicing_kernel`` and
    ``invoicing_gateway``.  The kernel MUST NEVER import from this package;
    ``invoicing_config.bridges`` translates settings into kernel objects.

Failure modes:
    - ``ConfigError`` (a ``ValueError``) for unknown keys and values that
      fail type coercion or range checks.
    - ``FileNotFoundError`` / ``yaml.YAMLError`` for an unreadable file.
"""

from invoicing_config.loader import ENV_VAR_MAPPING, load_settings
from invoicing_config.settings import (
    ConfigError,
    DatabaseSettings,
    FiscalRulesSettings,
    GatewaySettings,
    InvoicingSettings,
    IssuanceSettings,
)

__all__ = [
    "ConfigError",
    "DatabaseSettings",
    "ENV_VAR_MAPPING",
    "FiscalRulesSettings",
    "GatewaySettings",
    "InvoicingSettings",
    "IssuanceSettings",
    "load_settings",
]
