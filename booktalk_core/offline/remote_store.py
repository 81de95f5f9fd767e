# =============================================================================
# booktalk_core/offline/remote_store.py
# Supabase-Backed Journal Store
# =============================================================================
"""
RemoteStore - maps journal operations onto the Supabase (PostgREST) tables:

    profiles(id, name, joined_at, avatar_url)
    books(id, user_id, title, author, cover_url, status, rating, added_at,
          last_message, last_message_time, summary)
    messages(id, book_id, user_id, text, type, sender, timestamp, page,
             thought, keywords)

Every row is scoped to the signed-in user. Queries run through supabase-py's
synchronous client on a worker thread, one attempt each; retrying is the
caller's decision.
"""

from __future__ import annotations
import asyncio
import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from postgrest.exceptions import APIError
from supabase import Client

from booktalk_core.errors import (
    BookTalkError,
    ConflictError,
    NotAuthenticatedError,
    RemoteUnavailableError,
    SchemaMissingError,
)
from booktalk_core.logging import get_logger
from booktalk_core.models import Book, Message, Profile, enrichment_fields
from booktalk_core.offline.store_base import JournalStore

logger = get_logger(__name__)

PROFILES_TABLE = "profiles"
BOOKS_TABLE = "books"
MESSAGES_TABLE = "messages"

# PostgreSQL / PostgREST error codes
UNDEFINED_TABLE_CODES = ("42P01", "PGRST205")
UNIQUE_VIOLATION_CODE = "23505"


@dataclass(frozen=True)
class UserIdentity:
    """The authenticated owner of remote rows."""
    id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of a lightweight existence probe against the books table."""
    reachable: bool
    schema_present: bool
    latency_ms: Optional[float] = None
    error: Optional[str] = None


def translate_api_error(error: APIError, table: str, operation: str) -> BookTalkError:
    """Classify a PostgREST error into the journal's error kinds."""
    code = str(getattr(error, "code", "") or "")
    message = str(getattr(error, "message", "") or error)

    if code in UNDEFINED_TABLE_CODES or "does not exist" in message or "Could not find the table" in message:
        return SchemaMissingError(f"Table '{table}' is missing: {message}", table=table)
    if code == UNIQUE_VIOLATION_CODE:
        return ConflictError(f"Duplicate key in '{table}': {message}", table=table)
    return RemoteUnavailableError(
        f"{operation} on '{table}' failed: {message}",
        table=table,
        operation=operation,
        details={"code": code} if code else None,
    )


class RemoteStore(JournalStore):
    """Journal persistence in Supabase."""

    name = "cloud"

    def __init__(self, client: Client):
        self.client = client
        self._user: Optional[UserIdentity] = None

    # =========================================================================
    # QUERY EXECUTION
    # =========================================================================

    async def _execute(self, query, table: str, operation: str):
        try:
            return await asyncio.to_thread(query.execute)
        except APIError as e:
            raise translate_api_error(e, table, operation)
        except BookTalkError:
            raise
        except Exception as e:
            # httpx transport errors, timeouts, DNS failures...
            raise RemoteUnavailableError(
                f"{operation} on '{table}' failed: {e}", table=table, operation=operation
            )

    # =========================================================================
    # SESSION
    # =========================================================================

    async def get_current_user(self) -> Optional[UserIdentity]:
        """The signed-in user, or None when there is no session."""
        if self._user is not None:
            return self._user
        try:
            response = await asyncio.to_thread(self.client.auth.get_user)
        except Exception as e:
            logger.warning(f"Could not resolve current user: {e}")
            return None

        user = getattr(response, "user", None) if response is not None else None
        if user is None:
            return None
        self._user = UserIdentity(id=str(user.id), email=getattr(user, "email", None))
        return self._user

    async def _require_user(self, operation: str) -> UserIdentity:
        user = await self.get_current_user()
        if user is None:
            raise NotAuthenticatedError(operation=operation)
        return user

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        """Authenticate with e-mail and password."""
        return await self._authenticate(
            self.client.auth.sign_in_with_password, email, password, "sign_in"
        )

    async def sign_up(self, email: str, password: str) -> UserIdentity:
        """Register a new account and start its session."""
        return await self._authenticate(self.client.auth.sign_up, email, password, "sign_up")

    async def _authenticate(self, method, email: str, password: str, operation: str) -> UserIdentity:
        try:
            response = await asyncio.to_thread(method, {"email": email, "password": password})
        except Exception as e:
            raise NotAuthenticatedError(f"Authentication failed: {e}", operation=operation)

        user = getattr(response, "user", None)
        if user is None:
            raise NotAuthenticatedError("Authentication returned no user", operation=operation)

        self._user = UserIdentity(id=str(user.id), email=getattr(user, "email", None) or email)
        logger.info(f"Authenticated user {self._user.id} via {operation}")
        return self._user

    async def sign_out(self) -> None:
        self._user = None
        try:
            await asyncio.to_thread(self.client.auth.sign_out)
        except Exception as e:
            raise RemoteUnavailableError(f"Sign out failed: {e}", operation="sign_out")

    # =========================================================================
    # PROFILE
    # =========================================================================

    async def get_profile(self) -> Optional[Profile]:
        user = await self._require_user("get_profile")
        query = self.client.table(PROFILES_TABLE).select("*").eq("id", user.id).limit(1)
        response = await self._execute(query, PROFILES_TABLE, "get_profile")
        rows = response.data or []
        return Profile.from_remote(rows[0]) if rows else None

    async def save_profile(self, profile: Profile) -> None:
        user = await self._require_user("save_profile")
        query = self.client.table(PROFILES_TABLE).upsert(profile.to_remote(user.id), on_conflict="id")
        await self._execute(query, PROFILES_TABLE, "save_profile")

    # =========================================================================
    # BOOKS
    # =========================================================================

    async def get_books(self) -> List[Book]:
        """Books ordered by last activity, newest first."""
        user = await self._require_user("get_books")
        query = (
            self.client.table(BOOKS_TABLE)
            .select("*")
            .eq("user_id", user.id)
            .order("last_message_time", desc=True, nullsfirst=False)
        )
        response = await self._execute(query, BOOKS_TABLE, "get_books")
        return [Book.from_remote(row) for row in response.data or []]

    async def save_book(self, book: Book) -> None:
        user = await self._require_user("save_book")
        query = self.client.table(BOOKS_TABLE).upsert(book.to_remote(user.id), on_conflict="id")
        await self._execute(query, BOOKS_TABLE, "save_book")

    async def add_book(self, book: Book, welcome: Message) -> None:
        await self.save_book(book)
        try:
            await self.add_message(welcome)
        except BookTalkError:
            # Leave no book without its welcome message behind
            try:
                await self.delete_book_data(book.id)
            except BookTalkError as cleanup_error:
                logger.error(f"Could not remove half-written book {book.id}: {cleanup_error}")
            raise

    async def delete_book_data(self, book_id: str) -> None:
        user = await self._require_user("delete_book_data")
        messages_query = (
            self.client.table(MESSAGES_TABLE).delete().eq("book_id", book_id).eq("user_id", user.id)
        )
        await self._execute(messages_query, MESSAGES_TABLE, "delete_book_data")
        book_query = self.client.table(BOOKS_TABLE).delete().eq("id", book_id).eq("user_id", user.id)
        await self._execute(book_query, BOOKS_TABLE, "delete_book_data")

    # =========================================================================
    # MESSAGES
    # =========================================================================

    async def get_messages(self, book_id: str) -> List[Message]:
        """Messages of one book, oldest first."""
        user = await self._require_user("get_messages")
        query = (
            self.client.table(MESSAGES_TABLE)
            .select("*")
            .eq("book_id", book_id)
            .eq("user_id", user.id)
            .order("timestamp")
        )
        response = await self._execute(query, MESSAGES_TABLE, "get_messages")
        return [Message.from_remote(row) for row in response.data or []]

    async def add_message(self, message: Message) -> None:
        """Insert-only; an existing id raises ConflictError."""
        user = await self._require_user("add_message")
        query = self.client.table(MESSAGES_TABLE).insert(message.to_remote(user.id))
        try:
            await self._execute(query, MESSAGES_TABLE, "add_message")
        except ConflictError as e:
            e.details["record_id"] = message.id
            raise

    async def record_message(self, message: Message, book: Book) -> None:
        await self.add_message(message)
        try:
            await self.save_book(book)
        except BookTalkError:
            # No message may outlive a preview that never mentions it
            try:
                await self._delete_message(message.id)
            except BookTalkError as cleanup_error:
                logger.error(f"Could not remove orphaned message {message.id}: {cleanup_error}")
            raise

    async def _delete_message(self, message_id: str) -> None:
        user = await self._require_user("delete_message")
        query = self.client.table(MESSAGES_TABLE).delete().eq("id", message_id).eq("user_id", user.id)
        await self._execute(query, MESSAGES_TABLE, "delete_message")

    async def update_message(self, book_id: str, message_id: str, fields: Mapping[str, Any]) -> None:
        """Patch keywords/text only; anything else in ``fields`` is ignored."""
        patch = enrichment_fields(fields)
        if not patch:
            return
        user = await self._require_user("update_message")
        query = (
            self.client.table(MESSAGES_TABLE)
            .update(patch)
            .eq("id", message_id)
            .eq("user_id", user.id)
        )
        await self._execute(query, MESSAGES_TABLE, "update_message")

    # =========================================================================
    # CONNECTIVITY
    # =========================================================================

    async def probe(self) -> ProbeResult:
        """Check that the backend answers and the books table exists."""
        query = self.client.table(BOOKS_TABLE).select("id").limit(1)
        started = time.perf_counter()
        try:
            await self._execute(query, BOOKS_TABLE, "probe")
        except SchemaMissingError as e:
            return ProbeResult(reachable=True, schema_present=False, error=e.message)
        except BookTalkError as e:
            return ProbeResult(reachable=False, schema_present=False, error=e.message)
        latency_ms = (time.perf_counter() - started) * 1000
        return ProbeResult(reachable=True, schema_present=True, latency_ms=round(latency_ms, 1))
