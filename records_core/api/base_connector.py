"""
Base API Connector Class for the Record Service
Provides the shared HTTP plumbing every record connector builds on
"""
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, Iterable
import requests
from dataclasses import dataclass

from records_core.errors import TransportError
from records_core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class APIConfig:
    """Configuration for API connection"""
    api_name: str
    base_url: str
    api_key: Optional[str] = None
    headers: Optional[Dict[str, str]] = None
    timeout: Optional[float] = 30
    additional_params: Optional[Dict[str, Any]] = None


class BaseAPIConnector(ABC):
    """Abstract base class for all API connectors"""

    def __init__(self, config: APIConfig):
        self.config = config
        self.session = requests.Session()

        # Set default headers
        if config.headers:
            self.session.headers.update(config.headers)

        # Add API key to headers if provided
        if config.api_key:
            self._set_auth_header()

    @abstractmethod
    def _set_auth_header(self):
        """Set authentication header based on API requirements"""
        pass

    @abstractmethod
    def validate_response(self, response: requests.Response) -> bool:
        """Validate API response"""
        pass

    def _url(self, endpoint: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def _make_request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict] = None,
        data: Optional[Dict] = None,
        allowed_statuses: Iterable[int] = (),
    ) -> requests.Response:
        """
        Make HTTP request with error handling

        Args:
            endpoint: API endpoint (appended to base_url)
            method: HTTP method (GET, POST, etc.)
            params: Query parameters
            data: Request body data, sent as JSON
            allowed_statuses: Non-2xx statuses returned to the caller
                instead of raised (e.g. 404 for lookups)

        Returns:
            Response object

        Raises:
            TransportError: network failure or a non-2xx status
        """
        url = self._url(endpoint)

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=data,
                timeout=self.config.timeout
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(
                f"API request failed for {self.config.api_name}: {str(e)}",
                url=url,
            ) from e

        self._check_status(response, allowed_statuses, url)
        return response

    def _check_status(
        self,
        response: requests.Response,
        allowed_statuses: Iterable[int] = (),
        url: Optional[str] = None,
    ) -> None:
        """Raise TransportError for non-2xx statuses not explicitly allowed."""
        status = response.status_code
        if 200 <= status < 300 or status in tuple(allowed_statuses):
            return

        raise TransportError(
            f"{self.config.api_name} returned HTTP {response.status_code}",
            status_code=response.status_code,
            url=url or response.url,
            details={"body": self._error_body(response)},
        )

    @staticmethod
    def _error_body(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text[:200]

    def _parse_json(self, response: requests.Response) -> Any:
        """Decode a JSON body, treating malformed payloads as transport failures."""
        if not self.validate_response(response):
            raise TransportError(
                f"Invalid response from {self.config.api_name}",
                status_code=response.status_code,
                url=response.url,
            )
        return response.json()

    def test_connection(self) -> Dict[str, Any]:
        """
        Test API connection and return status

        Returns:
            Dict with status, message, and metadata
        """
        try:
            count = self._ping()
            return {
                "status": "success",
                "message": f"Successfully connected to {self.config.api_name}",
                "records": count,
            }
        except TransportError as e:
            return {
                "status": "error",
                "message": f"Connection failed: {e.message}"
            }

    @abstractmethod
    def _ping(self) -> int:
        """Minimal request used by test_connection; returns a record count"""
        pass
