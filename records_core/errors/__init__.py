# =============================================================================
# records_core/errors/__init__.py
# Centralized Error Handling for Clinic Records
# =============================================================================

from .exceptions import (
    RecordsError,
    TransportError,
    ValidationError,
    NotFoundError,
    CacheError,
    ConfigurationError,
)

from .handlers import handle_error

__all__ = [
    # Exceptions
    "RecordsError",
    "TransportError",
    "ValidationError",
    "NotFoundError",
    "CacheError",
    "ConfigurationError",
    # Handlers
    "handle_error",
]
