# =============================================================================
# booktalk_core/errors/__init__.py
# Centralized Error Handling for BookTalk
# =============================================================================

from .exceptions import (
    BookTalkError,
    NotAuthenticatedError,
    RemoteUnavailableError,
    SchemaMissingError,
    ConflictError,
    InvalidBackupFormatError,
    LocalStorageError,
    EntityValidationError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    user_message_for,
    ErrorContext,
)

__all__ = [
    # Exceptions
    "BookTalkError",
    "NotAuthenticatedError",
    "RemoteUnavailableError",
    "SchemaMissingError",
    "ConflictError",
    "InvalidBackupFormatError",
    "LocalStorageError",
    "EntityValidationError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "user_message_for",
    "ErrorContext",
]
