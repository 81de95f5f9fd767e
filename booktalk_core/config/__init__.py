# =============================================================================
# booktalk_core/config/__init__.py
# =============================================================================

from .settings import AppSettings, load_settings, DEFAULT_SECRETS_PATH

__all__ = ["AppSettings", "load_settings", "DEFAULT_SECRETS_PATH"]
