# =============================================================================
# booktalk_core/offline/optimistic.py
# Snapshot / Apply / Rollback for In-Memory Journal State
# =============================================================================

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional

from booktalk_core.logging import get_logger
from booktalk_core.models import Book, Message, Profile

logger = get_logger(__name__)


@dataclass
class JournalState:
    """
    What the UI renders: the profile, the library, and the open book's log.

    Entities are immutable, so copying the lists is enough to snapshot.
    """
    profile: Optional[Profile] = None
    books: List[Book] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)
    active_book_id: Optional[str] = None

    def snapshot(self) -> JournalState:
        return JournalState(
            profile=self.profile,
            books=list(self.books),
            messages=list(self.messages),
            active_book_id=self.active_book_id,
        )

    def restore(self, snapshot: JournalState) -> None:
        self.profile = snapshot.profile
        self.books = list(snapshot.books)
        self.messages = list(snapshot.messages)
        self.active_book_id = snapshot.active_book_id

    def find_book(self, book_id: Optional[str]) -> Optional[Book]:
        for book in self.books:
            if book.id == book_id:
                return book
        return None

    def replace_book(self, book: Book) -> None:
        self.books = [book if b.id == book.id else b for b in self.books]


class OptimisticUpdate:
    """
    Context manager around one optimistic mutation.

    On enter the state is snapshotted; the body applies the change and awaits
    persistence. If the body raises, the snapshot is restored exactly and the
    exception propagates.

    Usage:
        with OptimisticUpdate(state, "send message"):
            state.messages = state.messages + [message]
            state.replace_book(book)
            await store.record_message(message, book)
    """

    def __init__(self, state: JournalState, operation: str):
        self.state = state
        self.operation = operation
        self.snapshot: Optional[JournalState] = None
        self.rolled_back = False

    def __enter__(self) -> OptimisticUpdate:
        self.snapshot = self.state.snapshot()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            self.state.restore(self.snapshot)
            self.rolled_back = True
            logger.warning(f"Rolled back '{self.operation}': {exc_val}")
        return False
