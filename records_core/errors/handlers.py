# =============================================================================
# records_core/errors/handlers.py
# Error Handling Utilities for Clinic Records
# =============================================================================

from __future__ import annotations
import traceback
from typing import Callable, Optional

from records_core.logging import get_logger
from .exceptions import RecordsError

logger = get_logger(__name__)

Notifier = Callable[[str], None]


def handle_error(
    error: Exception,
    log_error: bool = True,
    user_message: Optional[str] = None,
    notifier: Optional[Notifier] = None,
) -> None:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        user_message: Custom message for the user (uses error message if None)
        notifier: Callable receiving the user-facing message (UI hook)
    """
    # Determine message and details
    if isinstance(error, RecordsError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    # Log the error
    if log_error:
        if recoverable:
            logger.warning(f"[{code}] {message}", extra={"details": details})
        else:
            logger.error(
                f"[{code}] {message}",
                extra={"details": details},
                exc_info=error,
            )

    # Show to user
    if notifier is not None:
        if recoverable:
            notifier(f"Error: {message}")
        else:
            notifier(f"Critical Error: {message}. Please contact support.")
