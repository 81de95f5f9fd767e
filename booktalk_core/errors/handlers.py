# =============================================================================
# booktalk_core/errors/handlers.py
# Error Handling Utilities for BookTalk
# =============================================================================

from __future__ import annotations
from typing import Callable, Optional

from booktalk_core.logging import get_logger
from .exceptions import (
    BookTalkError,
    ConflictError,
    InvalidBackupFormatError,
    LocalStorageError,
    NotAuthenticatedError,
    RemoteUnavailableError,
    SchemaMissingError,
)

logger = get_logger(__name__)

# Receives a short, user-facing message (a toast/banner in the UI)
Notifier = Callable[[str], None]

USER_MESSAGES = {
    NotAuthenticatedError: "Please sign in again to sync your journal.",
    RemoteUnavailableError: "Couldn't reach the cloud. Your last change was undone.",
    SchemaMissingError: "Cloud storage isn't set up yet. Your last change was undone.",
    ConflictError: "That entry already exists in the cloud.",
    InvalidBackupFormatError: "That backup file isn't valid.",
    LocalStorageError: "Couldn't save to this device. Your last change was undone.",
}


def user_message_for(error: Exception) -> str:
    """Map an error to the message shown to the reader."""
    for error_type, message in USER_MESSAGES.items():
        if isinstance(error, error_type):
            return message
    if isinstance(error, BookTalkError):
        return error.message
    return "Something went wrong. Your last change was undone."


def handle_error(
    error: Exception,
    notifier: Optional[Notifier] = None,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> str:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        notifier: Callback that surfaces the message to the user (optional)
        log_error: Whether to log the error
        user_message: Custom message to show user (derived from the error if None)

    Returns:
        The user-facing message
    """
    message = user_message or user_message_for(error)

    if isinstance(error, BookTalkError):
        code = error.code
        details = error.details
    else:
        code = "UNKNOWN"
        details = {"error_type": error.__class__.__name__}

    if log_error:
        logger.error(
            f"[{code}] {error}",
            extra={"details": details},
            exc_info=not isinstance(error, BookTalkError),
        )

    if notifier is not None:
        try:
            notifier(message)
        except Exception as e:
            logger.error(f"Error in notifier callback: {e}")

    return message


class ErrorContext:
    """
    Context manager for best-effort operations: failures are logged and,
    when ``recoverable``, swallowed so the caller carries on.

    Usage:
        with ErrorContext("Persist keywords") as ctx:
            await store.update_message(book_id, message_id, fields)
        if ctx.error:
            ...
    """

    def __init__(
        self,
        operation: str,
        recoverable: bool = True,
        notifier: Optional[Notifier] = None,
    ):
        self.operation = operation
        self.recoverable = recoverable
        self.notifier = notifier
        self.error: Optional[BaseException] = None

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"Completed: {self.operation}")
            return False

        if not issubclass(exc_type, Exception):
            # KeyboardInterrupt, CancelledError and friends always propagate
            return False

        self.error = exc_val
        logger.warning(f"Error during: {self.operation}: {exc_val}")
        if self.notifier is not None:
            handle_error(exc_val, notifier=self.notifier, log_error=False)

        # Suppress exception if recoverable
        return self.recoverable
