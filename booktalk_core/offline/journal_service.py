# =============================================================================
# booktalk_core/offline/journal_service.py
# Journal Service - Single API for Cloud/Local Journal Operations
# =============================================================================
"""
JournalService - the one entry point the UI talks to.

It automatically handles:
- Store selection (Supabase vs. on-device) through the ModeSelector
- Optimistic updates: the in-memory state changes before persistence
- Rollback of the in-memory state when persistence fails
- Retrying transient cloud failures before giving up
- Onboarding fallback: a failed post-login profile fetch switches to local

Usage:
------
from booktalk_core.offline import build_journal_service

service = build_journal_service(notifier=show_toast)
await service.start()

result = await service.add_book("Dune", "Frank Herbert", "")
if result:
    await service.load_messages(result.data.id)
    await service.send_message("Loved the opening", MessageType.TEXT, Sender.USER)

print(service.state.books)   # what the UI renders
"""

from __future__ import annotations
import asyncio
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union

from booktalk_core.ai import BookCompanion
from booktalk_core.config import AppSettings, load_settings
from booktalk_core.data import get_supabase_client
from booktalk_core.errors import (
    BookTalkError,
    ConfigurationError,
    EntityValidationError,
    ErrorContext,
    RemoteUnavailableError,
    handle_error,
)
from booktalk_core.errors.handlers import Notifier
from booktalk_core.models import (
    Book,
    Message,
    MessageType,
    Profile,
    ReadingStatus,
    Sender,
    enrichment_fields,
    now_ms,
    sort_books_by_recency,
)
from booktalk_core.offline.backup import build_backup, read_backup_file, write_backup_file
from booktalk_core.offline.local_database import LocalDatabase
from booktalk_core.offline.local_store import LocalStore
from booktalk_core.offline.mode_selector import ModeSelector
from booktalk_core.offline.optimistic import JournalState, OptimisticUpdate
from booktalk_core.offline.remote_store import RemoteStore
from booktalk_core.offline.store_base import JournalStore
from booktalk_core.services import BaseService, ServiceResult

MESSAGE_EXTRA_FIELDS = ("page", "thought", "keywords")


@dataclass(frozen=True)
class RetryPolicy:
    """
    How often a failed store call is attempted before the optimistic change
    is rolled back. Only transient errors (unreachable backend) are retried.
    """
    max_attempts: int = 3
    initial_delay: float = 0.5
    backoff_base: float = 2.0
    retry_on: Tuple[type, ...] = (RemoteUnavailableError,)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return self.initial_delay * (self.backoff_base ** (attempt - 1))


NO_RETRY = RetryPolicy(max_attempts=1)


@dataclass(frozen=True)
class ConnectionReport:
    """Result of the connectivity self-check."""
    success: bool
    message: str
    latency_ms: Optional[float] = None


def default_welcome(title: str) -> str:
    return f"Welcome to your reading log for {title}."


class JournalService(BaseService):
    """
    Journal state plus the operations that change it.

    Every mutating operation returns a ServiceResult and never raises for
    storage failures; the reader is told through ``notifier``.
    """

    def __init__(
        self,
        mode_selector: ModeSelector,
        local_store: LocalStore,
        remote_store: Optional[RemoteStore] = None,
        companion: Optional[BookCompanion] = None,
        retry_policy: RetryPolicy = RetryPolicy(),
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        notifier: Optional[Notifier] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__()
        self.mode_selector = mode_selector
        self.local_store = local_store
        self.remote_store = remote_store
        self.companion = companion
        self.retry_policy = retry_policy
        self.clock = clock
        self.id_factory = id_factory
        self.notifier = notifier
        self._sleep = sleep
        self.state = JournalState()
        self._enrichment_started: set = set()

        if self.mode_selector.is_cloud and self.remote_store is None:
            self.mode_selector.downgrade("no remote client available")

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def store(self) -> JournalStore:
        """The store every operation persists through right now."""
        if self.mode_selector.is_cloud and self.remote_store is not None:
            return self.remote_store
        return self.local_store

    @property
    def is_cloud(self) -> bool:
        return self.store is self.remote_store

    @property
    def active_book(self) -> Optional[Book]:
        return self.state.find_book(self.state.active_book_id)

    def books_by_recency(self) -> List[Book]:
        return sort_books_by_recency(self.state.books)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _persist(self, operation: str, call: Callable[[JournalStore], Awaitable[Any]]) -> Any:
        """Run ``call`` against the active store, retrying transient failures."""
        store = self.store
        attempt = 1
        while True:
            try:
                with self.log_operation(operation, store=store.name):
                    return await call(store)
            except self.retry_policy.retry_on as e:
                if attempt >= self.retry_policy.max_attempts:
                    raise
                delay = self.retry_policy.delay_for(attempt)
                self.logger.warning(
                    f"{operation} attempt {attempt}/{self.retry_policy.max_attempts} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                await self._sleep(delay)
                attempt += 1

    def _fail(self, operation: str, error: Exception) -> ServiceResult:
        self.logger.info(f"{operation} failed")
        message = handle_error(error, notifier=self.notifier)
        return ServiceResult.from_exception(error, error=message)

    def _no_active_book(self, operation: str) -> ServiceResult:
        self.logger.debug(f"{operation}: no active book")
        return ServiceResult.fail("No book is open", error_code="NO_ACTIVE_BOOK")

    # =========================================================================
    # LOADING
    # =========================================================================

    async def start(self, seed_demo: bool = False) -> ServiceResult:
        """Load the profile and library for a new session."""
        if seed_demo and not self.is_cloud:
            try:
                await self.local_store.seed_demo_data(self.clock())
            except BookTalkError as e:
                return self._fail("seed demo data", e)

        result = await self.load_profile()
        if not result:
            return result
        return await self.load_books()

    async def load_profile(self) -> ServiceResult:
        try:
            profile = await self._persist("load profile", lambda s: s.get_profile())
        except Exception as e:
            return self._fail("load profile", e)
        self.state.profile = profile
        return ServiceResult.ok(profile)

    async def load_books(self) -> ServiceResult:
        try:
            books = await self._persist("load books", lambda s: s.get_books())
        except Exception as e:
            return self._fail("load books", e)
        self.state.books = sort_books_by_recency(books)
        return ServiceResult.ok(list(self.state.books))

    async def load_messages(self, book_id: str) -> ServiceResult:
        """Open a book: load its log and make it the active book."""
        try:
            messages = await self._persist("load messages", lambda s: s.get_messages(book_id))
        except Exception as e:
            return self._fail("load messages", e)
        self.state.messages = sorted(messages, key=lambda m: m.timestamp)
        self.state.active_book_id = book_id
        return ServiceResult.ok(list(self.state.messages))

    def close_book(self) -> None:
        self.state.active_book_id = None
        self.state.messages = []

    # =========================================================================
    # BOOKS
    # =========================================================================

    async def add_book(self, title: str, author: str, cover_ref: Optional[str] = "") -> ServiceResult:
        """Add a book with a welcome message from the book itself."""
        title = (title or "").strip()
        if not title:
            return ServiceResult.fail("A title is required", error_code="DATA_001")
        author = (author or "").strip()

        if self.companion is not None:
            welcome_text = await self.companion.generate_welcome(title, author)
        else:
            welcome_text = default_welcome(title)

        now = self.clock()
        book = Book(
            id=self.id_factory(),
            title=title,
            author=author,
            cover_url=cover_ref or "",
            status=ReadingStatus.TO_READ,
            rating=0,
            added_at=now,
            last_message=welcome_text,
            last_message_time=now,
        )
        welcome = Message(
            id=f"{book.id}-init",
            book_id=book.id,
            text=welcome_text,
            type=MessageType.SYSTEM,
            timestamp=now,
            sender=Sender.BOOK,
        )

        try:
            with OptimisticUpdate(self.state, "add book"):
                self.state.books = [book] + self.state.books
                await self._persist("add book", lambda s: s.add_book(book, welcome))
        except Exception as e:
            return self._fail("add book", e)

        self.logger.info(f"Added book {book.id}: {title}")
        return ServiceResult.ok(book)

    async def update_book(self, partial: Mapping[str, Any]) -> ServiceResult:
        """Apply ``partial`` (e.g. {"status": ..., "rating": ...}) to the open book."""
        book = self.active_book
        if book is None:
            return self._no_active_book("update book")
        try:
            updated = book.updated(**partial)
        except EntityValidationError as e:
            return self._fail("update book", e)

        try:
            with OptimisticUpdate(self.state, "update book"):
                self.state.replace_book(updated)
                await self._persist("update book", lambda s: s.save_book(updated))
        except Exception as e:
            return self._fail("update book", e)
        return ServiceResult.ok(updated)

    async def toggle_reading_status(self) -> ServiceResult:
        """Flip READING <-> COMPLETED and log it in the conversation."""
        book = self.active_book
        if book is None:
            return self._no_active_book("toggle status")

        next_status = ReadingStatus.COMPLETED if book.status == ReadingStatus.READING else ReadingStatus.READING
        result = await self.update_book({"status": next_status})
        if not result:
            return result
        note = (
            "🎉 Finished reading this book!"
            if next_status == ReadingStatus.COMPLETED
            else "📖 Started reading again."
        )
        await self.send_message(note, MessageType.SYSTEM, Sender.USER)
        return ServiceResult.ok(self.active_book)

    async def rate_book(self, rating: int) -> ServiceResult:
        result = await self.update_book({"rating": rating})
        if not result:
            return result
        await self.send_message(f"Rated this book {rating} stars! ⭐", MessageType.SYSTEM, Sender.USER)
        return ServiceResult.ok(self.active_book)

    async def delete_book(self, book_id: str) -> ServiceResult:
        if self.state.find_book(book_id) is None:
            return ServiceResult.ok(None)
        try:
            with OptimisticUpdate(self.state, "delete book"):
                self.state.books = [b for b in self.state.books if b.id != book_id]
                if self.state.active_book_id == book_id:
                    self.close_book()
                await self._persist("delete book", lambda s: s.delete_book_data(book_id))
        except Exception as e:
            return self._fail("delete book", e)
        self.logger.info(f"Deleted book {book_id}")
        return ServiceResult.ok(book_id)

    # =========================================================================
    # MESSAGES
    # =========================================================================

    async def send_message(
        self,
        text: str,
        type: MessageType,
        sender: Sender,
        extras: Optional[Mapping[str, Any]] = None,
        book_id: Optional[str] = None,
    ) -> ServiceResult:
        """
        Append a message to a book (the open book by default) and refresh the
        book's preview fields.

        Args:
            text: Message body (the quote itself for QUOTE)
            type: MessageType
            sender: Sender.USER or Sender.BOOK
            extras: Optional page / thought / keywords
            book_id: Target book when it is not the open one
        """
        target_id = book_id or self.state.active_book_id
        book = self.state.find_book(target_id)
        if book is None:
            return self._no_active_book("send message")

        extras = {k: v for k, v in (extras or {}).items() if k in MESSAGE_EXTRA_FIELDS and v not in (None, "")}
        message = Message(
            id=self.id_factory(),
            book_id=book.id,
            text=text,
            type=type,
            timestamp=self.clock(),
            sender=sender,
            **extras,
        )
        updated_book = book.with_preview(message)

        try:
            with OptimisticUpdate(self.state, "send message"):
                if book.id == self.state.active_book_id:
                    self.state.messages = self.state.messages + [message]
                self.state.replace_book(updated_book)
                await self._persist(
                    "send message", lambda s: s.record_message(message, updated_book)
                )
        except Exception as e:
            return self._fail("send message", e)
        return ServiceResult.ok(message)

    async def update_message(self, message_id: str, partial: Mapping[str, Any]) -> ServiceResult:
        """
        Best-effort enrichment of a message in the open book. Only keywords and
        text change; the in-memory update stays even if persisting it fails.
        """
        index = next((i for i, m in enumerate(self.state.messages) if m.id == message_id), None)
        if index is None:
            return ServiceResult.ok(None)

        current = self.state.messages[index]
        patch = enrichment_fields(partial)
        updated = current.enriched(patch)
        if updated == current:
            return ServiceResult.ok(current)

        messages = list(self.state.messages)
        messages[index] = updated
        self.state.messages = messages

        with ErrorContext(f"persist enrichment of message {message_id}") as ctx:
            await self._persist(
                "update message",
                lambda s: s.update_message(current.book_id, message_id, patch),
            )
        return ServiceResult.ok(updated, metadata={"persisted": ctx.error is None})

    async def enrich_keywords(self, message_id: str) -> ServiceResult:
        """Populate keywords of a quote once, if the AI companion provides any."""
        message = next((m for m in self.state.messages if m.id == message_id), None)
        if message is None or message.keywords is not None:
            return ServiceResult.ok(message)
        if self.companion is None or message_id in self._enrichment_started:
            return ServiceResult.ok(message)

        self._enrichment_started.add(message_id)
        keywords = []
        with ErrorContext(f"extract keywords for message {message_id}"):
            keywords = await self.companion.extract_keywords(message.text)
        if not keywords:
            return ServiceResult.ok(message)
        return await self.update_message(message_id, {"keywords": keywords})

    async def send_quote(
        self,
        text: str,
        page: Optional[str] = None,
        thought: Optional[str] = None,
        enrich: bool = True,
    ) -> ServiceResult:
        """Save a quote from the reader, then try to tag it with keywords."""
        result = await self.send_message(text, MessageType.QUOTE, Sender.USER, {"page": page, "thought": thought})
        if result and enrich:
            await self.enrich_keywords(result.data.id)
        return result

    async def ask_book(self, text: str) -> ServiceResult:
        """Send the reader's text, then the book's AI reply."""
        book = self.active_book
        if book is None:
            return self._no_active_book("ask book")
        history = list(self.state.messages)

        sent = await self.send_message(text, MessageType.TEXT, Sender.USER)
        if not sent or self.companion is None:
            return sent

        reply = await self.companion.chat(book, history, text)
        return await self.send_message(reply, MessageType.AI_RESPONSE, Sender.BOOK, book_id=book.id)

    # =========================================================================
    # PROFILE & ONBOARDING
    # =========================================================================

    async def save_profile(self, profile: Profile) -> ServiceResult:
        try:
            with OptimisticUpdate(self.state, "save profile"):
                self.state.profile = profile
                await self._persist("save profile", lambda s: s.save_profile(profile))
        except Exception as e:
            return self._fail("save profile", e)
        return ServiceResult.ok(profile)

    async def continue_offline(self, name: str) -> ServiceResult:
        """Skip sign-in and keep the journal on this device."""
        self.mode_selector.downgrade("reader chose to continue offline")
        try:
            existing = await self.local_store.get_profile()
        except Exception as e:
            return self._fail("continue offline", e)
        if existing is not None:
            self.state.profile = existing
            return ServiceResult.ok(existing)
        return await self.save_profile(Profile(name=name.strip() or "Reader", joined_at=self.clock()))

    async def sign_in(self, email: str, password: str) -> ServiceResult:
        """Authenticate against the cloud, then load (or create) the profile."""
        if not self.is_cloud:
            return ServiceResult.fail("Cloud sync is not available", error_code="MODE_LOCAL")
        try:
            await self.remote_store.sign_in(email, password)
        except BookTalkError as e:
            return self._fail("sign in", e)
        return await self._enter_after_auth(email, name=None)

    async def sign_up(self, email: str, password: str, name: Optional[str] = None) -> ServiceResult:
        if not self.is_cloud:
            return ServiceResult.fail("Cloud sync is not available", error_code="MODE_LOCAL")
        try:
            await self.remote_store.sign_up(email, password)
        except BookTalkError as e:
            return self._fail("sign up", e)
        return await self._enter_after_auth(email, name=name)

    async def _enter_after_auth(self, email: str, name: Optional[str]) -> ServiceResult:
        fallback = Profile(name=name or email.split("@")[0], joined_at=self.clock())
        try:
            profile = None if name else await self.remote_store.get_profile()
            if profile is None:
                profile = fallback
                await self.remote_store.save_profile(profile)
        except BookTalkError as e:
            # The reader is signed in but the cloud schema is unusable
            self.mode_selector.downgrade(f"profile unavailable after sign-in: {e.message}")
            try:
                profile = await self.local_store.get_profile() or fallback
                await self.local_store.save_profile(profile)
            except BookTalkError as local_error:
                return self._fail("save profile", local_error)

        self.state.profile = profile
        await self.load_books()
        return ServiceResult.ok(profile, metadata={"mode": self.mode_selector.mode.value})

    async def sign_out(self) -> ServiceResult:
        """End the session and forget the in-memory journal."""
        if self.is_cloud:
            with ErrorContext("sign out"):
                await self.remote_store.sign_out()
        else:
            try:
                await self.local_store.clear_profile()
            except Exception as e:
                return self._fail("sign out", e)
        self.state = JournalState()
        self._enrichment_started.clear()
        return ServiceResult.ok()

    # =========================================================================
    # BACKUP / RESTORE
    # =========================================================================

    async def export_backup(self, path: Optional[Union[str, Path]] = None) -> ServiceResult:
        """Snapshot the active store, optionally writing it to ``path``."""
        try:
            if self.is_cloud:
                books = await self._persist("export books", lambda s: s.get_books())
                messages: Dict[str, List[Message]] = {}
                for book in books:
                    messages[book.id] = await self._persist(
                        "export messages", lambda s, book_id=book.id: s.get_messages(book_id)
                    )
                profile = await self._persist("export profile", lambda s: s.get_profile())
                backup = build_backup(profile, books, messages, timestamp=self.clock())
            else:
                backup = await self.local_store.create_backup(timestamp=self.clock())
            if path is not None:
                write_backup_file(path, backup)
        except Exception as e:
            return self._fail("export backup", e)
        return ServiceResult.ok(backup, metadata={"path": str(path) if path else None})

    async def restore_backup(self, backup: Union[Mapping[str, Any], str, Path]) -> ServiceResult:
        """Restore a backup (document or file path) into the on-device store."""
        try:
            if isinstance(backup, (str, Path)):
                backup = read_backup_file(backup)
            await self.local_store.restore_backup(backup)
        except Exception as e:
            return self._fail("restore backup", e)

        if not self.is_cloud:
            await self.load_profile()
            await self.load_books()
            if self.state.active_book_id:
                await self.load_messages(self.state.active_book_id)
        return ServiceResult.ok()

    # =========================================================================
    # STATUS
    # =========================================================================

    def reading_stats(self) -> Dict[str, int]:
        books = self.state.books
        return {
            "books": len(books),
            "reading": sum(1 for b in books if b.status == ReadingStatus.READING),
            "completed": sum(1 for b in books if b.status == ReadingStatus.COMPLETED),
            "reviews": sum(1 for b in books if b.rating > 0),
        }

    async def test_connection(self) -> ServiceResult:
        """
        Probe the cloud store.

        Reachable with schema -> success with latency; reachable without the
        books table -> success with a warning; unreachable -> failure.
        """
        if self.remote_store is None:
            report = ConnectionReport(success=False, message="Cloud sync is not configured.")
            return ServiceResult(success=False, data=report, error=report.message, error_code="CONFIG_001")

        probe = await self.remote_store.probe()
        if not probe.reachable:
            report = ConnectionReport(success=False, message=f"Connection failed: {probe.error}")
            return ServiceResult(success=False, data=report, error=report.message, error_code="REMOTE_001")

        if not probe.schema_present:
            report = ConnectionReport(
                success=True,
                message="Warning: connected, but the 'books' table is missing. Run the database setup script.",
            )
        else:
            report = ConnectionReport(
                success=True,
                message=f"Connected to cloud ({probe.latency_ms:.0f} ms).",
                latency_ms=probe.latency_ms,
            )
        return ServiceResult.ok(report)

    def get_status_display(self) -> Dict[str, Any]:
        status = self.mode_selector.get_status_display()
        status.update(self.reading_stats())
        status["active_book_id"] = self.state.active_book_id
        return status


# =============================================================================
# FACTORY
# =============================================================================

def build_journal_service(
    settings: Optional[AppSettings] = None,
    notifier: Optional[Notifier] = None,
) -> JournalService:
    """
    Wire a JournalService from settings.

    The session starts in CLOUD when Supabase is configured; if the client
    cannot be created it drops to LOCAL right away.
    """
    settings = settings or load_settings()
    settings.configure_logging()

    local_database = LocalDatabase(settings.local_db_path)
    local_database.initialize()
    mode_selector = ModeSelector(remote_configured=settings.remote_configured)

    remote_store = None
    try:
        client = get_supabase_client(settings)
        if client is not None:
            remote_store = RemoteStore(client)
    except ConfigurationError as e:
        handle_error(e, notifier=notifier, user_message="Cloud sync is unavailable. Using this device only.")

    return JournalService(
        mode_selector=mode_selector,
        local_store=LocalStore(local_database),
        remote_store=remote_store,
        companion=BookCompanion(api_key=settings.openai_api_key, model=settings.ai_model),
        retry_policy=RetryPolicy(
            max_attempts=settings.retry_attempts,
            initial_delay=settings.retry_initial_delay,
            backoff_base=settings.retry_backoff_base,
        ),
        notifier=notifier,
    )
