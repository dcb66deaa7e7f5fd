"""
Core library: infrastructure shared by the change feed processor.

Modules:
    logging  - Structured JSON logging with per-task context
    errors   - Error classification and exception hierarchy
    utils    - JSON serialization, processor id generation

Design Principles:
    - No dependency on a specific change feed store
    - Async-first where applicable
    - Type hints throughout
"""

from .types import ErrorCategory, ErrorClassifier, TokenProvider

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "ErrorClassifier",
    "TokenProvider",
]
