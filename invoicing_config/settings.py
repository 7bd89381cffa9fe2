"""
Typed settings (``invoicing_config.settings``).

Every setting is a frozen dataclass with a usable default, so a missing
section in the YAML file or an unset environment variable never leaves a
field undefined.  Range checks run in ``__post_init__`` and raise
``ConfigError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from invoicing_kernel.domain.fiscal_profile import FiscalRules


class ConfigError(ValueError):
    """Invalid or unparseable configuration value."""


@dataclass(frozen=True)
class GatewaySettings:
    """
    Fiscal gateway endpoint, credentials and transport limits.

    Paths are appended to ``base_url``.  Only login, single insert and the
    document view are fixed by the platform; the bulk, recipient and party
    paths differ between installations and are meant to be overridden.
    """

    base_url: str = ""
    username: str = ""
    password: str = ""
    provider: str = "uyumsoft"
    login_path: str = "/UyumApi/v1/GNL/UyumLogin"
    insert_path: str = "/UyumApi/v1/PSM/InsertInvoice"
    refund_path: str = "/UyumApi/v1/PSM/InsertInvoice"
    bulk_insert_path: str = "/UyumApi/v1/PSM/InsertInvoiceList"
    recipient_path: str = "/UyumApi/v1/PSM/CheckEInvoiceUser"
    party_path: str = "/UyumApi/v1/GNL/InsertEntity"
    view_path: str = "/UyumApi/v1/PSM/GetEInvoiceHTML"
    timeout_seconds: float = 30.0
    token_safety_margin_seconds: int = 300
    default_token_ttl_seconds: int = 86399
    pool_size: int = 10

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ConfigError("gateway.timeout_seconds must be positive")
        if self.token_safety_margin_seconds < 0:
            raise ConfigError("gateway.token_safety_margin_seconds cannot be negative")
        if self.default_token_ttl_seconds <= 0:
            raise ConfigError("gateway.default_token_ttl_seconds must be positive")
        if self.pool_size < 1:
            raise ConfigError("gateway.pool_size must be at least 1")

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    def __repr__(self) -> str:
        return (
            f"GatewaySettings(base_url={self.base_url!r}, username={self.username!r}, "
            f"password={'***' if self.password else ''!r}, provider={self.provider!r})"
        )


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///invoicing.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    lock_timeout_ms: int = 5000

    def __post_init__(self):
        if not self.url:
            raise ConfigError("database.url is required")
        if self.pool_size < 1:
            raise ConfigError("database.pool_size must be at least 1")
        if self.max_overflow < 0:
            raise ConfigError("database.max_overflow cannot be negative")
        if self.lock_timeout_ms <= 0:
            raise ConfigError("database.lock_timeout_ms must be positive")


@dataclass(frozen=True)
class FiscalRulesSettings:
    """Platform-wide classification rules; see ``FiscalRules``."""

    bank_transfer_channels: tuple[str, ...] = ("ikas", "website")
    bank_transfer_keywords: tuple[str, ...] = ("havale", "eft", "transfer", "wire")

    def to_rules(self) -> FiscalRules:
        return FiscalRules(
            bank_transfer_channels=frozenset(c.lower() for c in self.bank_transfer_channels),
            bank_transfer_keywords=tuple(k.lower() for k in self.bank_transfer_keywords),
        )


@dataclass(frozen=True)
class IssuanceSettings:
    max_retries: int = 10
    pending_batch_limit: int = 50
    log_level: str = "INFO"

    def __post_init__(self):
        if self.max_retries < 0:
            raise ConfigError("issuance.max_retries cannot be negative")
        if self.pending_batch_limit < 1:
            raise ConfigError("issuance.pending_batch_limit must be at least 1")
        if self.log_level.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ConfigError(f"issuance.log_level is not a logging level: {self.log_level}")


@dataclass(frozen=True)
class InvoicingSettings:
    """Everything the service needs at startup."""

    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    gateway: GatewaySettings = field(default_factory=GatewaySettings)
    fiscal_rules: FiscalRulesSettings = field(default_factory=FiscalRulesSettings)
    issuance: IssuanceSettings = field(default_factory=IssuanceSettings)
