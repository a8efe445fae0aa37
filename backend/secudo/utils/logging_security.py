"""
Security Logging Utilities for Secudo
Prevents log injection (CWE-117) when bundle, snapshot or request values
end up in log lines.

Imported bundles are untrusted input: project names, emails and ids from
them must pass through these helpers before being logged.
"""

import re
from typing import Any, Optional

# Patterns for detecting potentially malicious content
LOG_INJECTION_PATTERNS = [
    r"[\r\n]",  # CRLF injection
    r"%0[ad]",  # URL-encoded CRLF
    r"\\[rn]",  # Escaped newlines
    r"\x00",  # Null bytes
    r"[\x01-\x08\x0b\x0c\x0e-\x1f\x7f]",  # Control characters
]

# Pattern for safe characters in logs
SAFE_LOG_PATTERN = re.compile(r"^[a-zA-Z0-9._@\-\s]+$")
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")


def sanitize_for_log(value: Optional[Any], max_length: int = 100, allow_special: bool = False) -> str:
    """
    Sanitize any value for safe logging.

    Args:
        value: Value to sanitize
        max_length: Maximum length of output
        allow_special: Whether to allow some special characters

    Returns:
        str: Sanitized string safe for logging
    """
    if value is None:
        return "null"

    str_value = str(value)

    if len(str_value) > max_length:
        str_value = str_value[:max_length] + "..."

    for pattern in LOG_INJECTION_PATTERNS:
        str_value = re.sub(pattern, "", str_value)

    if not allow_special and not SAFE_LOG_PATTERN.match(str_value):
        # Keep only alphanumeric, dots, underscores, @, hyphens, spaces
        str_value = re.sub(r"[^a-zA-Z0-9._@\-\s]", "", str_value)

    if not str_value.strip():
        return "[sanitized]"

    return str_value.strip()


def sanitize_id_for_log(id_value: Optional[Any]) -> str:
    """
    Sanitize ID values for logging.

    Args:
        id_value: ID to sanitize (string, int, UUID, etc.)

    Returns:
        str: Sanitized ID
    """
    if id_value is None:
        return "[no_id]"

    str_id = str(id_value)
    if len(str_id) <= 64 and SAFE_ID_PATTERN.match(str_id):
        return str_id

    return sanitize_for_log(str_id, max_length=64)


def sanitize_email_for_log(email: Optional[str]) -> str:
    """Mask the local part of an email address: a***@example.com"""
    if not email:
        return "[no_email]"

    sanitized = sanitize_for_log(email, max_length=100)
    local, sep, domain = sanitized.partition("@")
    if not sep:
        return "[invalid_email]"
    return f"{local[:1]}***@{domain}"


def sanitize_error_message_for_log(error_msg: Optional[str]) -> str:
    """
    Sanitize error messages for logging to prevent information disclosure.

    Args:
        error_msg: Error message to sanitize

    Returns:
        str: Sanitized error message
    """
    if not error_msg:
        return "[no_error_message]"

    str_msg = str(error_msg)

    sensitive_patterns = [
        (r"password[=:\s]+[^\s]+", "password=[REDACTED]"),
        (r"token[=:\s]+[^\s]+", "token=[REDACTED]"),
        (r"secret[=:\s]+[^\s]+", "secret=[REDACTED]"),
    ]

    for pattern, replacement in sensitive_patterns:
        str_msg = re.sub(pattern, replacement, str_msg, flags=re.IGNORECASE)

    return sanitize_for_log(str_msg, max_length=500, allow_special=True)


def create_audit_log_entry(
    action: str,
    user_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    success: bool = True,
    error_message: Optional[str] = None,
    additional_context: Optional[dict] = None,
) -> str:
    """
    Create a standardized audit log entry.

    Args:
        action: Action being performed
        user_id: User performing the action
        resource_type: Type of resource being accessed
        resource_id: Resource identifier
        success: Whether the action succeeded
        error_message: Error message if action failed
        additional_context: Additional context data

    Returns:
        str: Formatted audit log entry
    """
    safe_type = sanitize_for_log(resource_type) if resource_type else "unknown_type"
    parts = [
        f"action={sanitize_for_log(action)}",
        f"user={sanitize_id_for_log(user_id)}",
        f"resource={safe_type}:{sanitize_id_for_log(resource_id)}",
        f"success={success}",
    ]

    if error_message and not success:
        parts.append(f"error={sanitize_error_message_for_log(error_message)}")

    if additional_context:
        for key, value in sorted(additional_context.items()):
            parts.append(f"{sanitize_for_log(key, max_length=30)}={sanitize_for_log(value, max_length=60)}")

    return " ".join(parts)
