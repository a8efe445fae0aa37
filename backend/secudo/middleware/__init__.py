"""
Secudo HTTP middleware
"""

from .error_handling import ErrorHandlingMiddleware, http_exception_for  # noqa: F401

__all__ = ["ErrorHandlingMiddleware", "http_exception_for"]
