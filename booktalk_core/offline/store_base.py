# =============================================================================
# booktalk_core/offline/store_base.py
# Store Interface Shared by the Local and Remote Backends
# =============================================================================

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional

from booktalk_core.models import Book, Message, Profile


class JournalStore(ABC):
    """
    Persistence contract the journal service talks to.

    Both variants expose the same coroutines so the service never branches on
    which backend is active. Implementations raise ``BookTalkError``
    subclasses; they never retry and never touch the service's in-memory
    state.
    """

    #: Short label used in logs ("local" / "cloud")
    name: str = "store"

    @abstractmethod
    async def get_profile(self) -> Optional[Profile]:
        ...

    @abstractmethod
    async def save_profile(self, profile: Profile) -> None:
        ...

    @abstractmethod
    async def get_books(self) -> List[Book]:
        ...

    @abstractmethod
    async def get_messages(self, book_id: str) -> List[Message]:
        ...

    @abstractmethod
    async def add_book(self, book: Book, welcome: Message) -> None:
        """Persist a new book together with its welcome message."""

    @abstractmethod
    async def save_book(self, book: Book) -> None:
        """Insert or update a single book, keyed by id."""

    @abstractmethod
    async def add_message(self, message: Message) -> None:
        ...

    @abstractmethod
    async def record_message(self, message: Message, book: Book) -> None:
        """
        Persist a new message together with its book's refreshed preview.

        Either both writes land or neither does; a failure leaves no message
        behind that the book's ``last_message`` does not account for.
        """

    @abstractmethod
    async def update_message(self, book_id: str, message_id: str, fields: Mapping[str, Any]) -> None:
        """Patch ``keywords`` / ``text`` of a message; other keys are ignored."""

    @abstractmethod
    async def delete_book_data(self, book_id: str) -> None:
        """Remove a book and all of its messages."""
