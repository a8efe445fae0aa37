"""
Secudo Utility Functions
Shared helpers for safe logging across services
"""

from .logging_security import (  # noqa: F401
    create_audit_log_entry,
    sanitize_email_for_log,
    sanitize_error_message_for_log,
    sanitize_for_log,
    sanitize_id_for_log,
)
