# =============================================================================
# booktalk_core/ai/__init__.py
# =============================================================================

from .book_companion import BookCompanion

__all__ = ["BookCompanion"]
