"""
API transport module
Provides the call contract and HTTP implementation for the REST backend
"""

from .transport import (
    BaseTransport,
    HTTPTransport,
    APIConfig,
    TransportResponse,
    METHODS,
)

__all__ = [
    "BaseTransport",
    "HTTPTransport",
    "APIConfig",
    "TransportResponse",
    "METHODS",
]
