"""Secret redaction for gateway call records."""

from typing import Any

# Lower-case substrings; a key containing any of them is redacted.
SENSITIVE_FIELDS = (
    "authorization",
    "password",
    "token",
    "secretkey",
    "secret_key",
)

REDACTED = "[REDACTED]"


def is_sensitive(key: str) -> bool:
    lower_key = key.lower()
    return any(name in lower_key for name in SENSITIVE_FIELDS)


def redact(obj: Any) -> Any:
    """Copy of ``obj`` with every sensitive mapping value replaced."""
    if isinstance(obj, list):
        return [redact(item) for item in obj]
    if isinstance(obj, dict):
        return {
            key: REDACTED if is_sensitive(str(key)) else redact(value)
            for key, value in obj.items()
        }
    return obj
