"""
Transport layer for the loan-tracking REST API
Provides the abstract call contract used by the sync coordinator and a
requests-based HTTP implementation
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
import logging

import requests

from finance_core.errors import NetworkUnavailable

logger = logging.getLogger(__name__)

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


@dataclass
class TransportResponse:
    """A response obtained from the server, successful or not"""
    ok: bool
    status: int
    body: Any = None

    @property
    def error_message(self) -> str:
        """Server-provided error message, or a generic one built from the status"""
        if isinstance(self.body, dict):
            for key in ("error", "message", "detail"):
                value = self.body.get(key)
                if value:
                    return str(value)
        if isinstance(self.body, str) and self.body.strip():
            return self.body.strip()
        return f"HTTP {self.status}"


@dataclass
class APIConfig:
    """Configuration for API connection"""
    base_url: str
    api_key: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = 15.0
    retryable_statuses: Tuple[int, ...] = (502, 503, 504)

    @classmethod
    def from_settings(cls, settings) -> APIConfig:
        """Build from OfflineSettings"""
        return cls(
            base_url=settings.api_base_url,
            api_key=settings.api_key,
            headers=dict(settings.headers),
            timeout=settings.request_timeout,
            retryable_statuses=tuple(settings.retryable_statuses),
        )


class BaseTransport(ABC):
    """
    Abstract transport: one call per request.

    Implementations return a TransportResponse whenever the server answered
    (ok=False for application-level failures) and raise NetworkUnavailable
    when no usable answer was obtained.
    """

    @abstractmethod
    def call(
        self,
        endpoint: str,
        method: str = "GET",
        payload: Any = None,
    ) -> TransportResponse:
        """Send a request to endpoint and return the server's answer"""
        pass

    def close(self) -> None:
        """Release any held resources"""
        pass


class HTTPTransport(BaseTransport):
    """JSON-over-HTTP transport backed by a requests.Session"""

    def __init__(self, config: APIConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

        if config.headers:
            self.session.headers.update(config.headers)

        if config.api_key:
            self._set_auth_header()

    def _set_auth_header(self):
        """Set bearer authentication header"""
        self.session.headers["Authorization"] = f"Bearer {self.config.api_key}"

    def _build_url(self, endpoint: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def call(
        self,
        endpoint: str,
        method: str = "GET",
        payload: Any = None,
    ) -> TransportResponse:
        """
        Make HTTP request with error handling

        Args:
            endpoint: API endpoint (appended to base_url)
            method: HTTP method (GET, POST, PUT, PATCH, DELETE)
            payload: JSON request body (ignored for GET)

        Returns:
            TransportResponse with parsed JSON body

        Raises:
            NetworkUnavailable: connection error, timeout, or a gateway status
                listed in retryable_statuses
        """
        method = method.upper()
        url = self._build_url(endpoint)

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=payload if method != "GET" else None,
                timeout=self.config.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise NetworkUnavailable(
                f"API request failed: {str(e)}",
                endpoint=endpoint,
                method=method,
            )

        if response.status_code in self.config.retryable_statuses:
            raise NetworkUnavailable(
                f"API unavailable (HTTP {response.status_code})",
                endpoint=endpoint,
                method=method,
                details={"status": response.status_code},
            )

        body = self._parse_body(response)
        if not response.ok:
            logger.debug(f"{method} {endpoint} -> HTTP {response.status_code}")

        return TransportResponse(ok=response.ok, status=response.status_code, body=body)

    @staticmethod
    def _parse_body(response: requests.Response) -> Any:
        """Decode a JSON body, keeping text bodies as {"error": text} on failures"""
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            text = response.text
            return text if response.ok else {"error": text}

    def close(self) -> None:
        self.session.close()
