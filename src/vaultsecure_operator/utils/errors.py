"""Error sanitization utilities to keep credential material out of logs and events."""

import re
from typing import Any


# Patterns whose first group is a credential value
SENSITIVE_PATTERNS = [
    # 40 character AWS secret access keys
    r"secret[_\s]?(?:access[_\s]?)?key[\"']?\s*[:=]\s*[\"']?([A-Za-z0-9/+=]{40})",
    # Vault service, batch and recovery tokens
    r"\b(hv[sbr]\.[A-Za-z0-9_\-]{20,})",
    r"x-vault-token[\"']?\s*[:=]\s*[\"']?([A-Za-z0-9_\-\.]+)",
    r"session[_\s]?token[\"']?\s*[:=]\s*[\"']?([A-Za-z0-9/+=]+)",
]

# Fields to redact completely
SENSITIVE_FIELDS = {
    "secret_access_key",
    "secret_key",
    "secret",
    "session_token",
    "vault_token",
    "token",
    "password",
    "credentials",
}


def sanitize_error_message(message: str) -> str:
    """Sanitize error message to remove sensitive information.

    Args:
        message: Original error message

    Returns:
        Sanitized error message with credential material redacted
    """
    sanitized = message

    for pattern in SENSITIVE_PATTERNS:
        sanitized = re.sub(
            pattern,
            lambda m: m.group(0).replace(m.group(1), "[REDACTED]"),
            sanitized,
            flags=re.IGNORECASE,
        )

    # "field: value" / "field=value" pairs
    for field in SENSITIVE_FIELDS:
        sanitized = re.sub(
            rf"\b{field}[\"']?\s*[:=]\s*[\"']?(?!\[REDACTED\])([^\s,;\)\"']+)",
            rf"{field}: [REDACTED]",
            sanitized,
            flags=re.IGNORECASE,
        )

    return sanitized


def sanitize_exception(error: Exception) -> str:
    """Sanitize exception message."""
    return sanitize_error_message(str(error))


def sanitize_dict(data: dict[str, Any], sensitive_keys: set[str] | None = None) -> dict[str, Any]:
    """Sanitize dictionary by redacting sensitive fields.

    Args:
        data: Dictionary to sanitize
        sensitive_keys: Additional keys to redact (merged with SENSITIVE_FIELDS)

    Returns:
        Sanitized dictionary with sensitive values redacted
    """
    all_sensitive = SENSITIVE_FIELDS | (sensitive_keys or set())
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        if key.lower() in all_sensitive:
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = sanitize_dict(value, sensitive_keys)
        elif isinstance(value, str):
            sanitized[key] = sanitize_error_message(value)
        else:
            sanitized[key] = value

    return sanitized
