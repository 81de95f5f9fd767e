# =============================================================================
# booktalk_core/logging/__init__.py
# Centralized Logging Configuration
# =============================================================================

from .config import setup_logging, get_logger, resolve_level, LogContext

__all__ = ["setup_logging", "get_logger", "resolve_level", "LogContext"]
