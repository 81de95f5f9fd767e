# =============================================================================
# booktalk_core/data/__init__.py
# =============================================================================

from .supabase_client import get_supabase_client

__all__ = ["get_supabase_client"]
