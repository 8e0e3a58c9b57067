# =============================================================================
# finance_core/errors/__init__.py
# Centralized Error Handling for the Offline Data Layer
# =============================================================================

from .exceptions import (
    FinanceCoreError,
    NetworkUnavailable,
    ApplicationError,
    StorageUnavailable,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "FinanceCoreError",
    "NetworkUnavailable",
    "ApplicationError",
    "StorageUnavailable",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "ErrorContext",
]
