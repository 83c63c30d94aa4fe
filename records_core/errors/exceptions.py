# =============================================================================
# records_core/errors/exceptions.py
# Custom Exception Hierarchy for Clinic Records
# =============================================================================

from typing import Optional, Dict, Any, Sequence


class RecordsError(Exception):
    """
    Base exception for all Clinic Records errors.

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
        self.code = code or "CR_000"
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

class TransportError(RecordsError):
    """Raised when the record service is unreachable or answers non-2xx"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if url:
            details["url"] = url

        super().__init__(
            message=message,
            code="NET_001",
            details=details,
            **kwargs,
        )
        self.status_code = status_code
        self.url = url


# =============================================================================
# DATA LAYER EXCEPTIONS
# =============================================================================

class ValidationError(RecordsError):
    """Raised when input fields fail validation before reaching the service"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        missing: Optional[Sequence[str]] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if missing:
            details["missing"] = list(missing)

        super().__init__(
            message=message,
            code="DATA_001",
            details=details,
            **kwargs,
        )


class NotFoundError(RecordsError):
    """Raised when a requested patient, visit or file does not exist"""

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        entity_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if entity:
            details["entity"] = entity
        if entity_id:
            details["entity_id"] = entity_id

        super().__init__(
            message=message,
            code="DATA_404",
            details=details,
            **kwargs,
        )


class CacheError(RecordsError):
    """Raised when the durable local cache cannot be read or written"""

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        path: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key
        if path:
            details["path"] = path

        super().__init__(
            message=message,
            code="CACHE_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(RecordsError):
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
