# =============================================================================
# finance_core/errors/exceptions.py
# Custom Exception Hierarchy for the Offline Data Layer
# =============================================================================

from typing import Optional, Dict, Any


class FinanceCoreError(Exception):
    """
    Base exception for all finance_core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "NET_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "FC_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# TRANSPORT EXCEPTIONS
# =============================================================================

class NetworkUnavailable(FinanceCoreError):
    """Raised when the transport could not reach the server at all"""

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        method: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if endpoint:
            details["endpoint"] = endpoint
        if method:
            details["method"] = method

        super().__init__(
            message=message,
            code="NET_001",
            details=details,
            **kwargs,
        )


class ApplicationError(FinanceCoreError):
    """Raised when the server answered with a non-success response"""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
        endpoint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if status is not None:
            details["status"] = status
        if endpoint:
            details["endpoint"] = endpoint

        super().__init__(
            message=message,
            code="APP_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
        self.status = status
        self.body = body


# =============================================================================
# STORAGE EXCEPTIONS
# =============================================================================

class StorageUnavailable(FinanceCoreError):
    """Raised when the local store cannot be opened or written"""

    def __init__(
        self,
        message: str,
        db_path: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if db_path:
            details["db_path"] = db_path
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="STORE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(FinanceCoreError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
