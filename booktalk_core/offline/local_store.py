# =============================================================================
# booktalk_core/offline/local_store.py
# On-Device Journal Store
# =============================================================================
"""
LocalStore - the journal persisted in the local key-value database.

Layout:
    booktalk_profile            -> profile object
    booktalk_books              -> list of books (storage order)
    booktalk_messages_<bookId>  -> list of messages for one book

Reads and writes are synchronous SQLite calls; they are exposed as
coroutines so the store is interchangeable with RemoteStore.
"""

from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional, Sequence

from booktalk_core.errors import ConflictError, EntityValidationError
from booktalk_core.logging import get_logger
from booktalk_core.models import (
    Book,
    Message,
    MessageType,
    Profile,
    ReadingStatus,
    Sender,
    now_ms,
)
from booktalk_core.offline.backup import build_backup, parse_backup
from booktalk_core.offline.local_database import LocalDatabase
from booktalk_core.offline.store_base import JournalStore

logger = get_logger(__name__)

PROFILE_KEY = "booktalk_profile"
BOOKS_KEY = "booktalk_books"
MESSAGES_KEY_PREFIX = "booktalk_messages_"

DEMO_BOOK_ID = "demo-1"


def messages_key(book_id: str) -> str:
    return f"{MESSAGES_KEY_PREFIX}{book_id}"


class LocalStore(JournalStore):
    """Journal persistence on the device."""

    name = "local"

    def __init__(self, database: LocalDatabase):
        self.database = database

    # =========================================================================
    # DECODING
    # =========================================================================

    def _read_books(self) -> List[Book]:
        books = []
        for item in self.database.get(BOOKS_KEY, []):
            try:
                books.append(Book.from_local(item))
            except EntityValidationError as e:
                logger.error(f"Skipping unreadable book entry: {e}")
        return books

    def _read_messages(self, book_id: str) -> List[Message]:
        messages = []
        for item in self.database.get(messages_key(book_id), []):
            try:
                messages.append(Message.from_local(item))
            except EntityValidationError as e:
                logger.error(f"Skipping unreadable message in book {book_id}: {e}")
        return messages

    @staticmethod
    def _encode(entities: Sequence[Any]) -> List[Dict[str, Any]]:
        return [entity.to_local() for entity in entities]

    # =========================================================================
    # PROFILE
    # =========================================================================

    async def get_profile(self) -> Optional[Profile]:
        data = self.database.get(PROFILE_KEY)
        if not data:
            return None
        try:
            return Profile.from_local(data)
        except EntityValidationError as e:
            logger.error(f"Stored profile is unreadable: {e}")
            return None

    async def save_profile(self, profile: Profile) -> None:
        self.database.set(PROFILE_KEY, profile.to_local())

    async def clear_profile(self) -> None:
        """Forget the local reader (logout-and-reset)."""
        self.database.delete(PROFILE_KEY)

    # =========================================================================
    # BOOKS
    # =========================================================================

    async def get_books(self) -> List[Book]:
        """Books in storage order; callers sort by recency."""
        return self._read_books()

    async def save_books(self, books: Sequence[Book]) -> None:
        """Overwrite the whole book index."""
        self.database.set(BOOKS_KEY, self._encode(books))

    def _upsert_book(self, book: Book) -> List[Book]:
        books = self._read_books()
        for index, existing in enumerate(books):
            if existing.id == book.id:
                books[index] = book
                break
        else:
            books.insert(0, book)
        return books

    async def save_book(self, book: Book) -> None:
        self.database.set(BOOKS_KEY, self._encode(self._upsert_book(book)))

    async def add_book(self, book: Book, welcome: Message) -> None:
        books = [b for b in self._read_books() if b.id != book.id]
        books.insert(0, book)
        messages = self._read_messages(book.id) + [welcome]
        self.database.write_batch({
            BOOKS_KEY: self._encode(books),
            messages_key(book.id): self._encode(messages),
        })

    async def delete_book_data(self, book_id: str) -> None:
        books = [b for b in self._read_books() if b.id != book_id]
        self.database.write_batch(
            {BOOKS_KEY: self._encode(books)},
            delete_keys=[messages_key(book_id)],
        )
        logger.info(f"Deleted local data for book {book_id}")

    # =========================================================================
    # MESSAGES
    # =========================================================================

    async def get_messages(self, book_id: str) -> List[Message]:
        return self._read_messages(book_id)

    async def save_messages(self, book_id: str, messages: Sequence[Message]) -> None:
        """Overwrite the message list of one book."""
        self.database.set(messages_key(book_id), self._encode(messages))

    def _append_message(self, message: Message) -> List[Message]:
        messages = self._read_messages(message.book_id)
        if any(m.id == message.id for m in messages):
            raise ConflictError(
                f"Message {message.id} already exists", table="messages", record_id=message.id
            )
        messages.append(message)
        return messages

    async def add_message(self, message: Message) -> None:
        messages = self._append_message(message)
        self.database.set(messages_key(message.book_id), self._encode(messages))

    async def record_message(self, message: Message, book: Book) -> None:
        """Append ``message`` and store ``book`` in one transaction."""
        messages = self._append_message(message)
        self.database.write_batch({
            BOOKS_KEY: self._encode(self._upsert_book(book)),
            messages_key(message.book_id): self._encode(messages),
        })

    async def update_message(self, book_id: str, message_id: str, fields: Mapping[str, Any]) -> None:
        messages = self._read_messages(book_id)
        for index, message in enumerate(messages):
            if message.id == message_id:
                messages[index] = message.enriched(fields)
                self.database.set(messages_key(book_id), self._encode(messages))
                return
        logger.debug(f"update_message: {message_id} not found in book {book_id}")

    # =========================================================================
    # BACKUP / RESTORE
    # =========================================================================

    async def create_backup(self, timestamp: Optional[int] = None) -> Dict[str, Any]:
        """Snapshot profile, books and every book's messages."""
        books = self._read_books()
        return build_backup(
            profile=await self.get_profile(),
            books=books,
            messages={book.id: self._read_messages(book.id) for book in books},
            timestamp=timestamp if timestamp is not None else now_ms(),
        )

    async def restore_backup(self, backup: Mapping[str, Any]) -> None:
        """
        Additive restore: books and message lists found in the backup
        overwrite their local counterparts; anything only present locally
        is kept. Message lists whose book is in neither the backup nor the
        local library are dropped.
        """
        profile, books, messages = parse_backup(backup)

        restored_ids = {book.id for book in books}
        merged_books = list(books) + [b for b in self._read_books() if b.id not in restored_ids]

        items: Dict[str, Any] = {BOOKS_KEY: self._encode(merged_books)}
        if profile is not None:
            items[PROFILE_KEY] = profile.to_local()
        for book_id, book_messages in messages.items():
            items[messages_key(book_id)] = self._encode(book_messages)

        known_keys = {messages_key(book.id) for book in merged_books} | set(items)
        orphaned = [key for key in self.database.keys(MESSAGES_KEY_PREFIX) if key not in known_keys]
        if orphaned:
            logger.warning(f"Dropping {len(orphaned)} message lists with no book")

        self.database.write_batch(items, delete_keys=orphaned)
        logger.info(f"Restored backup: {len(books)} books, {len(messages)} message lists")

    # =========================================================================
    # DEMO DATA
    # =========================================================================

    async def seed_demo_data(self, timestamp: Optional[int] = None) -> bool:
        """Add a sample book when the library is empty. Returns True if seeded."""
        if self._read_books():
            return False

        now = timestamp if timestamp is not None else now_ms()
        welcome = "Welcome to your reading log for The Great Gatsby."
        book = Book(
            id=DEMO_BOOK_ID,
            title="The Great Gatsby",
            author="F. Scott Fitzgerald",
            cover_url="https://picsum.photos/id/24/200/300",
            status=ReadingStatus.READING,
            rating=0,
            added_at=now,
            last_message=welcome,
            last_message_time=now,
            summary="A story of decadence and excess.",
        )
        message = Message(
            id="msg-1",
            book_id=DEMO_BOOK_ID,
            text=f"{welcome} You can chat with me about the plot!",
            type=MessageType.SYSTEM,
            timestamp=now,
            sender=Sender.BOOK,
        )
        await self.add_book(book, message)
        logger.info("Seeded demo book")
        return True
