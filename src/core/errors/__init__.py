"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- ChangefeedError hierarchy for typed exceptions
- Classification utilities for error handling
"""

from core.errors.exceptions import (
    AuthError,
    # Base classes
    ChangefeedError,
    ConfigurationError,
    # Processor stages
    DiscoveryError,
    # Enums
    ErrorCategory,
    HandlerError,
    PermanentError,
    PositionParseError,
    ProgressHandlerError,
    ThrottlingError,
    TransientError,
    # Classification utilities
    classify_exception,
    classify_http_status,
    wrap_exception,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "ChangefeedError",
    "AuthError",
    "TransientError",
    "ThrottlingError",
    "PermanentError",
    "ConfigurationError",
    "PositionParseError",
    # Processor stages
    "DiscoveryError",
    "HandlerError",
    "ProgressHandlerError",
    # Classification utilities
    "classify_http_status",
    "classify_exception",
    "wrap_exception",
]
