# =============================================================================
# booktalk_core/services/base_service.py
# Base Service Class with Common Functionality
# =============================================================================

from __future__ import annotations
from abc import ABC
from dataclasses import dataclass
from typing import Any, Dict, Optional

from booktalk_core.errors import BookTalkError
from booktalk_core.logging import LogContext, get_logger


@dataclass
class ServiceResult:
    """
    Standard result container for service operations.

    The UI renders ``error`` as a notification; it never has to catch.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, metadata: Dict[str, Any] = None) -> ServiceResult:
        """Create a successful result"""
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        metadata: Dict[str, Any] = None
    ) -> ServiceResult:
        """Create a failed result"""
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            metadata=metadata,
        )

    @classmethod
    def from_exception(cls, e: Exception, error: Optional[str] = None) -> ServiceResult:
        """Create a failed result from an exception"""
        if isinstance(e, BookTalkError):
            return cls(
                success=False,
                error=error or e.message,
                error_code=e.code,
                metadata=e.details,
            )
        return cls(
            success=False,
            error=error or str(e),
            error_code="EXCEPTION",
        )


class BaseService(ABC):
    """
    Abstract base class for services.

    Provides a class-named logger and timed operation logging.

    Usage:
        class MyService(BaseService):
            async def do_something(self) -> ServiceResult:
                with self.log_operation("Doing something"):
                    result = await ...
                    return ServiceResult.ok(result)
    """

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def log_operation(self, operation: str, store: Optional[str] = None) -> LogContext:
        """Create a logging context for an operation."""
        return LogContext(self.logger, operation, store=store)
