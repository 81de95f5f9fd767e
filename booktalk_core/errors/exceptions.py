# =============================================================================
# booktalk_core/errors/exceptions.py
# Custom Exception Hierarchy for BookTalk
# =============================================================================

from typing import Optional, Dict, Any


class BookTalkError(Exception):
    """
    Base exception for all BookTalk errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "REMOTE_001")
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
        self.code = code or "BT_000"
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
# REMOTE STORE EXCEPTIONS
# =============================================================================

class NotAuthenticatedError(BookTalkError):
    """Raised when a remote operation is attempted without a user session"""

    def __init__(self, message: str = "No authenticated session", operation: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="AUTH_001",
            details=details,
            **kwargs,
        )


class RemoteUnavailableError(BookTalkError):
    """Raised when the remote backend cannot be reached or a query fails"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if table:
            details["table"] = table
        if operation:
            details["operation"] = operation

        super().__init__(
            message=message,
            code="REMOTE_001",
            details=details,
            **kwargs,
        )


class SchemaMissingError(BookTalkError):
    """Raised when the backend is reachable but an expected table is absent"""

    def __init__(self, message: str, table: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if table:
            details["table"] = table

        super().__init__(
            message=message,
            code="REMOTE_002",
            details=details,
            **kwargs,
        )


class ConflictError(BookTalkError):
    """Raised when an insert collides with an existing primary key"""

    def __init__(
        self,
        message: str,
        table: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if table:
            details["table"] = table
        if record_id:
            details["record_id"] = record_id

        super().__init__(
            message=message,
            code="REMOTE_003",
            details=details,
            **kwargs,
        )


# =============================================================================
# LOCAL STORE EXCEPTIONS
# =============================================================================

class InvalidBackupFormatError(BookTalkError):
    """Raised when a backup payload is malformed"""

    def __init__(self, message: str, missing: Optional[list] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if missing:
            details["missing"] = missing

        super().__init__(
            message=message,
            code="BACKUP_001",
            details=details,
            **kwargs,
        )


class LocalStorageError(BookTalkError):
    """Raised when the on-device database cannot be read or written"""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None) or {}
        if key:
            details["key"] = key

        super().__init__(
            message=message,
            code="LOCAL_001",
            details=details,
            **kwargs,
        )


# =============================================================================
# DATA / CONFIGURATION EXCEPTIONS
# =============================================================================

class EntityValidationError(BookTalkError):
    """Raised when an entity field holds an invalid value"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[str] = None,
        actual: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if field:
            details["field"] = field
        if expected:
            details["expected"] = expected
        if actual is not None:
            details["actual"] = actual

        super().__init__(
            message=message,
            code="DATA_001",
            details=details,
            **kwargs,
        )


class ConfigurationError(BookTalkError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", None) or {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )
