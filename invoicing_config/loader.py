"""
Settings loader (``invoicing_config.loader``).

Responsibility
--------------
Builds an ``InvoicingSettings`` from, in increasing priority:

1. dataclass defaults,
2. an optional YAML file with one mapping per section
   (``database``, ``gateway``, ``fiscal_rules``, ``issuance``),
3. environment variables listed in ``ENV_VAR_MAPPING``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, or a value that cannot be coerced to the
  field's type  -> ``ConfigError``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import MISSING, fields
from pathlib import Path
from typing import Any

import yaml

from invoicing_config.settings import (
    ConfigError,
    DatabaseSettings,
    FiscalRulesSettings,
    GatewaySettings,
    InvoicingSettings,
    IssuanceSettings,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseSettings,
    "gateway": GatewaySettings,
    "fiscal_rules": FiscalRulesSettings,
    "issuance": IssuanceSettings,
}

# Environment variable -> (section, field)
ENV_VAR_MAPPING: dict[str, tuple[str, str]] = {
    "INVOICING_DATABASE_URL": ("database", "url"),
    "INVOICING_DATABASE_POOL_SIZE": ("database", "pool_size"),
    "INVOICING_LOCK_TIMEOUT_MS": ("database", "lock_timeout_ms"),
    "INVOICING_GATEWAY_URL": ("gateway", "base_url"),
    "INVOICING_GATEWAY_USER": ("gateway", "username"),
    "INVOICING_GATEWAY_PASSWORD": ("gateway", "password"),
    "INVOICING_GATEWAY_TIMEOUT": ("gateway", "timeout_seconds"),
    "INVOICING_BANK_TRANSFER_CHANNELS": ("fiscal_rules", "bank_transfer_channels"),
    "INVOICING_MAX_RETRIES": ("issuance", "max_retries"),
    "INVOICING_PENDING_BATCH_LIMIT": ("issuance", "pending_batch_limit"),
    "INVOICING_LOG_LEVEL": ("issuance", "log_level"),
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML settings file.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: top level must be a mapping")
    return data


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> InvoicingSettings:
    """
    Resolve settings from defaults, an optional YAML file and the environment.

    Args:
        path: YAML file; skipped when None.
        environ: Environment to read; defaults to ``os.environ``.
    """
    raw: dict[str, dict[str, Any]] = {name: {} for name in _SECTIONS}

    if path is not None:
        for section, values in load_yaml_file(Path(path)).items():
            if section not in _SECTIONS:
                raise ConfigError(f"Unknown settings section: {section}")
            if values is None:
                continue
            if not isinstance(values, dict):
                raise ConfigError(f"Settings section {section} must be a mapping")
            raw[section].update(values)

    env = os.environ if environ is None else environ
    for env_var, (section, key) in ENV_VAR_MAPPING.items():
        value = env.get(env_var)
        if value is not None and value != "":
            raw[section][key] = value

    built = {name: _build(name, cls, raw[name]) for name, cls in _SECTIONS.items()}
    return InvoicingSettings(**built)


def _build(section: str, cls: type, values: dict[str, Any]) -> Any:
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(values) - set(known))
    if unknown:
        raise ConfigError(f"Unknown {section} setting(s): {', '.join(unknown)}")

    kwargs = {}
    for name, value in values.items():
        f = known[name]
        default = f.default if f.default is not MISSING else f.default_factory()
        kwargs[name] = _coerce(f"{section}.{name}", value, default)
    return cls(**kwargs)


def _coerce(key: str, value: Any, default: Any) -> Any:
    """Convert ``value`` to the type of the field's default."""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ConfigError(f"{key}: expected a boolean, got {value!r}")

    if isinstance(default, int):
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{key}: expected an integer, got {value!r}") from exc

    if isinstance(default, float):
        try:
            return float(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{key}: expected a number, got {value!r}") from exc

    if isinstance(default, tuple):
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if isinstance(value, (list, tuple)):
            return tuple(str(item) for item in value)
        raise ConfigError(f"{key}: expected a list, got {value!r}")

    if value is None:
        raise ConfigError(f"{key}: value is required")
    return str(value)
