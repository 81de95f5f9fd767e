# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from postgrest.exceptions import APIError

from booktalk_core.models import Book, Message, MessageType, Profile, ReadingStatus, Sender
from booktalk_core.offline import (
    JournalService,
    LocalDatabase,
    LocalStore,
    ModeSelector,
    RemoteStore,
    RetryPolicy,
)

START_MS = 1_700_000_000_000


def api_error(code: str, message: str) -> APIError:
    return APIError({"code": code, "message": message, "hint": None, "details": None})


# =============================================================================
# FAKE SUPABASE CLIENT
# =============================================================================

class FakeQuery:
    """Chainable query builder recording what supabase-py would send."""

    def __init__(self, backend: "FakeSupabase", table: str):
        self.backend = backend
        self.table_name = table
        self.action = "select"
        self.payload: Any = None
        self.filters: List[tuple] = []
        self.order_by: Optional[tuple] = None
        self.row_limit: Optional[int] = None

    def select(self, columns: str = "*"):
        self.action = "select"
        return self

    def insert(self, row: Dict[str, Any]):
        self.action, self.payload = "insert", row
        return self

    def upsert(self, row: Dict[str, Any], on_conflict: str = "id"):
        self.action, self.payload = "upsert", row
        return self

    def update(self, patch: Dict[str, Any]):
        self.action, self.payload = "update", patch
        return self

    def delete(self):
        self.action = "delete"
        return self

    def eq(self, column: str, value: Any):
        self.filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False, nullsfirst: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, count: int):
        self.row_limit = count
        return self

    def execute(self):
        return self.backend.run(self)


class FakeAuth:
    """Minimal stand-in for ``client.auth``."""

    def __init__(self, user_id: str, email: str):
        self.user = SimpleNamespace(id=user_id, email=email)
        self.session_active = True
        self.reject_credentials = False
        self.signed_out = False

    def get_user(self):
        return SimpleNamespace(user=self.user) if self.session_active else None

    def sign_in_with_password(self, credentials: Dict[str, str]):
        if self.reject_credentials:
            raise Exception("Invalid login credentials")
        self.session_active = True
        self.user = SimpleNamespace(id=self.user.id, email=credentials["email"])
        return SimpleNamespace(user=self.user)

    def sign_up(self, credentials: Dict[str, str]):
        return self.sign_in_with_password(credentials)

    def sign_out(self):
        self.session_active = False
        self.signed_out = True


class FakeSupabase:
    """
    In-memory PostgREST backend.

    Failures can be queued per table (``fail``), made permanent (``break_table``)
    or simulated as a missing schema (``drop_table``).
    """

    def __init__(self, user_id: str = "user-1", email: str = "reader@example.com"):
        self.tables: Dict[str, List[Dict[str, Any]]] = {"profiles": [], "books": [], "messages": []}
        self.auth = FakeAuth(user_id, email)
        self.queued_failures: Dict[str, List[Exception]] = {}
        self.broken: Dict[str, Exception] = {}
        self.calls: List[tuple] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def fail(self, table: str, code: str = "PGRST000", message: str = "Service unavailable", times: int = 1):
        error = api_error(code, message)
        self.queued_failures.setdefault(table, []).extend([error] * times)

    def break_table(self, table: str, error: Optional[Exception] = None):
        self.broken[table] = error or api_error("PGRST000", "Service unavailable")

    def drop_table(self, table: str):
        self.tables.pop(table, None)

    def run(self, query: FakeQuery):
        table = query.table_name
        self.calls.append((table, query.action))

        if table in self.broken:
            raise self.broken[table]
        if self.queued_failures.get(table):
            raise self.queued_failures[table].pop(0)
        if table not in self.tables:
            raise api_error("PGRST205", f"Could not find the table 'public.{table}' in the schema cache")

        rows = self.tables[table]
        matches = [r for r in rows if all(r.get(c) == v for c, v in query.filters)]

        if query.action == "select":
            if query.order_by:
                column, desc = query.order_by
                present = sorted((r for r in matches if r.get(column) is not None), key=lambda r: r[column], reverse=desc)
                matches = present + [r for r in matches if r.get(column) is None]
            if query.row_limit is not None:
                matches = matches[:query.row_limit]
            return SimpleNamespace(data=[dict(r) for r in matches])

        if query.action == "insert":
            if any(r["id"] == query.payload["id"] for r in rows):
                raise api_error("23505", "duplicate key value violates unique constraint")
            rows.append(dict(query.payload))
            return SimpleNamespace(data=[dict(query.payload)])

        if query.action == "upsert":
            self.tables[table] = [r for r in rows if r["id"] != query.payload["id"]] + [dict(query.payload)]
            return SimpleNamespace(data=[dict(query.payload)])

        if query.action == "update":
            for row in matches:
                row.update(query.payload)
            return SimpleNamespace(data=[dict(r) for r in matches])

        if query.action == "delete":
            self.tables[table] = [r for r in rows if r not in matches]
            return SimpleNamespace(data=matches)

        raise AssertionError(f"unexpected action {query.action}")


# =============================================================================
# DETERMINISTIC COLLABORATORS
# =============================================================================

class FakeClock:
    """Epoch-ms clock advancing one second per reading."""

    def __init__(self, start: int = START_MS, step: int = 1000):
        self.now = start
        self.step = step

    def __call__(self) -> int:
        current = self.now
        self.now += self.step
        return current


class SequentialIds:
    def __init__(self, prefix: str = "id"):
        self.prefix = prefix
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"{self.prefix}-{self.count}"


class FakeCompanion:
    """AI companion returning canned answers."""

    def __init__(self, keywords: Optional[List[str]] = None):
        self.keywords = keywords if keywords is not None else ["Hope", "Memory", "Loss"]
        self.keyword_calls = 0
        self.chat_history: List[Message] = []

    async def generate_welcome(self, title: str, author: str) -> str:
        return f"Welcome to your reading log for {title}."

    async def chat(self, book: Book, history, user_text: str) -> str:
        self.chat_history = list(history)
        return f"{book.title} says hello"

    async def extract_keywords(self, text: str) -> List[str]:
        self.keyword_calls += 1
        return list(self.keywords)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def id_factory():
    return SequentialIds()


@pytest.fixture
def notifications():
    """Messages surfaced to the reader."""
    return []


@pytest.fixture
def sleeps():
    """Delays requested by the retry loop."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    async def _sleep(delay: float) -> None:
        sleeps.append(delay)
    return _sleep


@pytest.fixture
def local_database():
    database = LocalDatabase()
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def local_store(local_database):
    return LocalStore(local_database)


@pytest.fixture
def fake_supabase():
    return FakeSupabase()


@pytest.fixture
def remote_store(fake_supabase):
    return RemoteStore(fake_supabase)


@pytest.fixture
def companion():
    return FakeCompanion()


@pytest.fixture
def local_service(local_store, clock, id_factory, notifications, fake_sleep):
    """Journal service running in LOCAL mode."""
    return JournalService(
        mode_selector=ModeSelector(remote_configured=False),
        local_store=local_store,
        clock=clock,
        id_factory=id_factory,
        notifier=notifications.append,
        sleep=fake_sleep,
    )


@pytest.fixture
def cloud_service(local_store, remote_store, clock, id_factory, notifications, fake_sleep):
    """Journal service running in CLOUD mode against the fake backend."""
    return JournalService(
        mode_selector=ModeSelector(remote_configured=True),
        local_store=local_store,
        remote_store=remote_store,
        retry_policy=RetryPolicy(max_attempts=3, initial_delay=0.5, backoff_base=2),
        clock=clock,
        id_factory=id_factory,
        notifier=notifications.append,
        sleep=fake_sleep,
    )


# =============================================================================
# SAMPLE ENTITIES
# =============================================================================

@pytest.fixture
def sample_profile():
    return Profile(name="Ada", joined_at=START_MS)


@pytest.fixture
def sample_book():
    return Book(
        id="book-1",
        title="Dune",
        author="Frank Herbert",
        cover_url="https://covers.example/dune.jpg",
        status=ReadingStatus.READING,
        rating=4,
        added_at=START_MS,
        last_message="Welcome",
        last_message_time=START_MS,
    )


@pytest.fixture
def sample_message():
    return Message(
        id="msg-1",
        book_id="book-1",
        text="Fear is the mind-killer.",
        type=MessageType.QUOTE,
        timestamp=START_MS + 5000,
        sender=Sender.USER,
        page="12",
        thought="Still true",
    )
