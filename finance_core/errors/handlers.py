# =============================================================================
# finance_core/errors/handlers.py
# Error Handling Utilities for the Offline Data Layer
# =============================================================================

from __future__ import annotations
import traceback
from typing import Any, Dict, Optional

from finance_core.logging import get_logger
from .exceptions import FinanceCoreError

logger = get_logger(__name__)


def handle_error(
    error: Exception,
    log_error: bool = True,
    context: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Centralized error handling function.

    Presentation is left to the caller; this only logs and normalizes.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        context: Short description of what was being done

    Returns:
        Error dictionary (see FinanceCoreError.to_dict)
    """
    if isinstance(error, FinanceCoreError):
        info = error.to_dict()
    else:
        info = {
            "error_type": error.__class__.__name__,
            "code": "UNKNOWN",
            "message": str(error),
            "details": {"traceback": traceback.format_exc()},
            "recoverable": True,
        }

    if context:
        info["context"] = context

    if log_error:
        prefix = f"{context}: " if context else ""
        logger.error(
            f"{prefix}[{info['code']}] {info['message']}",
            extra={"details": info["details"]},
            exc_info=error,
        )

    return info


class ErrorContext:
    """
    Context manager for error handling with automatic logging.

    Usage:
        with ErrorContext("Listing pending mutations", recoverable=True) as ctx:
            rows = store.list_pending_mutations()
        if ctx.error:
            ...

    Recoverable FinanceCoreErrors are logged and suppressed; everything else
    propagates after logging.
    """

    def __init__(self, operation: str, recoverable: bool = True):
        self.operation = operation
        self.recoverable = recoverable
        self.error: Optional[Dict[str, Any]] = None

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"Completed: {self.operation}")
            return False

        self.error = handle_error(exc_val, context=self.operation)

        if self.recoverable and isinstance(exc_val, FinanceCoreError):
            return exc_val.recoverable
        return False
