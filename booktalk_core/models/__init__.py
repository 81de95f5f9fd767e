# =============================================================================
# booktalk_core/models/__init__.py
# Journal Entities
# =============================================================================

from .entities import (
    Profile,
    Book,
    Message,
    ReadingStatus,
    MessageType,
    Sender,
    ENRICHABLE_MESSAGE_FIELDS,
    now_ms,
    preview_text,
    enrichment_fields,
    sort_books_by_recency,
    ms_to_iso,
    iso_to_ms,
)

__all__ = [
    "Profile",
    "Book",
    "Message",
    "ReadingStatus",
    "MessageType",
    "Sender",
    "ENRICHABLE_MESSAGE_FIELDS",
    "now_ms",
    "preview_text",
    "enrichment_fields",
    "sort_books_by_recency",
    "ms_to_iso",
    "iso_to_ms",
]
