"""
Core types and protocols used across modules.

Enums and protocol definitions shared by the store bindings and the
processor so that error handling decisions are made in one vocabulary.
"""

from enum import Enum
from typing import Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    The processor itself never retries; categories tell the caller whether
    restarting from the last reported checkpoint is likely to help.

    Categories:
        TRANSIENT: Temporary failures (timeouts, 429/503 from the store)
        AUTH: Authentication failures (401, rejected key or token)
        PERMANENT: Failures that won't succeed on restart
                   (404, malformed positions, configuration issues)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class ErrorClassifier(Protocol):
    """
    Protocol for error classification implementations.

    Store bindings implement this to map their native errors onto
    ErrorCategory.
    """

    def classify_error(self, error: Exception) -> ErrorCategory:
        """
        Classify an exception into an error category.

        Args:
            error: Exception to classify

        Returns:
            ErrorCategory indicating how to handle this error
        """
        ...

    def is_transient(self, error: Exception) -> bool:
        """
        Check if error is transient.

        Args:
            error: Exception to check

        Returns:
            True if error may succeed on a later attempt
        """
        ...


class TokenProvider(Protocol):
    """
    Protocol for bearer token providers.

    Used by the Cosmos DB binding when Azure AD auth replaces the master key.
    """

    async def get_token(self, scopes: list[str]) -> str:
        """
        Get an access token for the specified scopes.

        Args:
            scopes: List of OAuth scopes required

        Returns:
            Access token string

        Raises:
            AuthError: If token acquisition fails
        """
        ...

    async def close(self) -> None:
        """Release any underlying credential resources."""
        ...


__all__ = [
    "ErrorCategory",
    "ErrorClassifier",
    "TokenProvider",
]
