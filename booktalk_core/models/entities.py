# =============================================================================
# booktalk_core/models/entities.py
# Canonical Entity Shapes and Storage Mappings
# =============================================================================
"""
Profile, Book and Message, plus the two serialization mappings:

- local: identity mapping, camelCase field names as stored on device
  (``coverUrl``, ``lastMessageTime``...), timestamps as epoch milliseconds.
- remote: snake_case relational columns (``cover_url``,
  ``last_message_time``...), timestamps as ISO-8601 UTC strings.

A field added to an entity must be added to its ``*_REMOTE_FIELDS`` table as
well, or it silently stops persisting to the cloud.
"""

from __future__ import annotations
import dataclasses
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from booktalk_core.errors import EntityValidationError


class ReadingStatus(Enum):
    """Reading progress of a book."""
    TO_READ = "TO_READ"
    READING = "READING"
    COMPLETED = "COMPLETED"


class MessageType(Enum):
    """Kinds of journal entries."""
    TEXT = "TEXT"
    QUOTE = "QUOTE"
    IMAGE = "IMAGE"
    SYSTEM = "SYSTEM"
    AI_RESPONSE = "AI_RESPONSE"  # Message from the "book" itself


class Sender(Enum):
    USER = "user"
    BOOK = "book"


MIN_RATING = 0
MAX_RATING = 5

# Only these may change after a message is written (asynchronous enrichment)
ENRICHABLE_MESSAGE_FIELDS = ("keywords", "text")

# local name -> remote column
PROFILE_REMOTE_FIELDS = {
    "name": "name",
    "joinedAt": "joined_at",
    "avatarUrl": "avatar_url",
}

BOOK_REMOTE_FIELDS = {
    "id": "id",
    "title": "title",
    "author": "author",
    "coverUrl": "cover_url",
    "status": "status",
    "rating": "rating",
    "addedAt": "added_at",
    "lastMessage": "last_message",
    "lastMessageTime": "last_message_time",
    "summary": "summary",
}

MESSAGE_REMOTE_FIELDS = {
    "id": "id",
    "bookId": "book_id",
    "text": "text",
    "type": "type",
    "sender": "sender",
    "timestamp": "timestamp",
    "page": "page",
    "thought": "thought",
    "keywords": "keywords",
}

TIMESTAMP_FIELDS = frozenset({"joinedAt", "addedAt", "lastMessageTime", "timestamp"})


# =============================================================================
# TIMESTAMP CONVERSION
# =============================================================================

def ms_to_iso(ms: int) -> str:
    """Epoch milliseconds -> ISO-8601 UTC string."""
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat(timespec="milliseconds")


def iso_to_ms(value: Union[str, int, float, None]) -> Optional[int]:
    """ISO-8601 string (or a number already in ms) -> epoch milliseconds."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise EntityValidationError(f"Unparseable timestamp: {value!r}", field="timestamp", expected="ISO-8601")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return round(parsed.timestamp() * 1000)


def _to_remote_row(local: Mapping[str, Any], field_map: Mapping[str, str]) -> Dict[str, Any]:
    row = {}
    for local_name, column in field_map.items():
        value = local.get(local_name)
        if local_name in TIMESTAMP_FIELDS and value is not None:
            value = ms_to_iso(value)
        row[column] = value
    return row


def _from_remote_row(row: Mapping[str, Any], field_map: Mapping[str, str]) -> Dict[str, Any]:
    local = {}
    for local_name, column in field_map.items():
        value = row.get(column)
        if value is None:
            continue
        if local_name in TIMESTAMP_FIELDS:
            value = iso_to_ms(value)
        local[local_name] = value
    return local


def _parse_enum(enum_cls, value, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        expected = ", ".join(member.value for member in enum_cls)
        raise EntityValidationError(
            f"Invalid {field}: {value!r}", field=field, expected=expected, actual=str(value)
        )


def _require(data: Mapping[str, Any], key: str, entity: str) -> Any:
    if key not in data or data[key] is None:
        raise EntityValidationError(f"{entity} is missing '{key}'", field=key)
    return data[key]


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# =============================================================================
# ENTITIES
# =============================================================================

@dataclass(frozen=True)
class Profile:
    """The reader. One per session."""
    name: str
    joined_at: int
    avatar_url: Optional[str] = None

    def to_local(self) -> Dict[str, Any]:
        return _drop_none({
            "name": self.name,
            "joinedAt": self.joined_at,
            "avatarUrl": self.avatar_url,
        })

    @classmethod
    def from_local(cls, data: Mapping[str, Any]) -> Profile:
        return cls(
            name=_require(data, "name", "Profile"),
            joined_at=int(_require(data, "joinedAt", "Profile")),
            avatar_url=data.get("avatarUrl"),
        )

    def to_remote(self, user_id: str) -> Dict[str, Any]:
        row = _to_remote_row(self.to_local(), PROFILE_REMOTE_FIELDS)
        row["id"] = user_id
        return row

    @classmethod
    def from_remote(cls, row: Mapping[str, Any]) -> Profile:
        return cls.from_local(_from_remote_row(row, PROFILE_REMOTE_FIELDS))


@dataclass(frozen=True)
class Book:
    """A book in the reader's library, with a denormalized preview of its latest message."""
    id: str
    title: str
    author: str
    cover_url: str = ""
    status: ReadingStatus = ReadingStatus.TO_READ
    rating: int = 0
    added_at: int = 0
    last_message: Optional[str] = None
    last_message_time: Optional[int] = None
    summary: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "status", _parse_enum(ReadingStatus, self.status, "status"))
        if isinstance(self.rating, bool) or not isinstance(self.rating, int):
            raise EntityValidationError(
                "Rating must be an integer", field="rating", expected="int", actual=repr(self.rating)
            )
        if not MIN_RATING <= self.rating <= MAX_RATING:
            raise EntityValidationError(
                f"Rating must be between {MIN_RATING} and {MAX_RATING}",
                field="rating",
                expected=f"{MIN_RATING}-{MAX_RATING}",
                actual=str(self.rating),
            )

    def updated(self, **fields: Any) -> Book:
        """Return a copy with ``fields`` applied. The id never changes."""
        if "id" in fields and fields["id"] != self.id:
            raise EntityValidationError("A book's id cannot change", field="id")
        try:
            return dataclasses.replace(self, **fields)
        except TypeError as e:
            raise EntityValidationError(f"Unknown book field: {e}")

    def with_preview(self, message: Message) -> Book:
        return dataclasses.replace(
            self,
            last_message=preview_text(message.type, message.text),
            last_message_time=message.timestamp,
        )

    def to_local(self) -> Dict[str, Any]:
        return _drop_none({
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "coverUrl": self.cover_url,
            "status": self.status.value,
            "rating": self.rating,
            "lastMessage": self.last_message,
            "lastMessageTime": self.last_message_time,
            "addedAt": self.added_at,
            "summary": self.summary,
        })

    @classmethod
    def from_local(cls, data: Mapping[str, Any]) -> Book:
        last_time = data.get("lastMessageTime")
        return cls(
            id=str(_require(data, "id", "Book")),
            title=_require(data, "title", "Book"),
            author=data.get("author", ""),
            cover_url=data.get("coverUrl") or "",
            status=data.get("status", ReadingStatus.TO_READ.value),
            rating=int(data.get("rating", 0)),
            added_at=int(data.get("addedAt", 0)),
            last_message=data.get("lastMessage"),
            last_message_time=int(last_time) if last_time is not None else None,
            summary=data.get("summary"),
        )

    def to_remote(self, user_id: str) -> Dict[str, Any]:
        row = _to_remote_row(self.to_local(), BOOK_REMOTE_FIELDS)
        row["user_id"] = user_id
        return row

    @classmethod
    def from_remote(cls, row: Mapping[str, Any]) -> Book:
        return cls.from_local(_from_remote_row(row, BOOK_REMOTE_FIELDS))


@dataclass(frozen=True)
class Message:
    """One journal entry in a book's conversation log."""
    id: str
    book_id: str
    text: str
    type: MessageType
    timestamp: int
    sender: Sender
    page: Optional[str] = None
    thought: Optional[str] = None
    keywords: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        object.__setattr__(self, "type", _parse_enum(MessageType, self.type, "type"))
        object.__setattr__(self, "sender", _parse_enum(Sender, self.sender, "sender"))
        if self.keywords is not None:
            object.__setattr__(self, "keywords", tuple(self.keywords))

    def enriched(self, fields: Mapping[str, Any]) -> Message:
        """Apply an enrichment patch; fields other than keywords/text are ignored."""
        changes = {k: v for k, v in fields.items() if k in ENRICHABLE_MESSAGE_FIELDS}
        if not changes:
            return self
        return dataclasses.replace(self, **changes)

    def to_local(self) -> Dict[str, Any]:
        return _drop_none({
            "id": self.id,
            "bookId": self.book_id,
            "text": self.text,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "sender": self.sender.value,
            "page": self.page,
            "thought": self.thought,
            "keywords": list(self.keywords) if self.keywords is not None else None,
        })

    @classmethod
    def from_local(cls, data: Mapping[str, Any]) -> Message:
        return cls(
            id=str(_require(data, "id", "Message")),
            book_id=str(_require(data, "bookId", "Message")),
            text=data.get("text", ""),
            type=_require(data, "type", "Message"),
            timestamp=int(_require(data, "timestamp", "Message")),
            sender=_require(data, "sender", "Message"),
            page=data.get("page"),
            thought=data.get("thought"),
            keywords=data.get("keywords"),
        )

    def to_remote(self, user_id: str) -> Dict[str, Any]:
        row = _to_remote_row(self.to_local(), MESSAGE_REMOTE_FIELDS)
        row["user_id"] = user_id
        return row

    @classmethod
    def from_remote(cls, row: Mapping[str, Any]) -> Message:
        return cls.from_local(_from_remote_row(row, MESSAGE_REMOTE_FIELDS))


# =============================================================================
# HELPERS
# =============================================================================

def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


def preview_text(message_type: MessageType, text: str) -> str:
    """Text shown in the book list for the latest message."""
    if message_type == MessageType.IMAGE:
        return "Sent an image"
    if message_type == MessageType.QUOTE:
        return f"Quote: {text}"
    return text


def enrichment_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only the fields a message update may change, as remote-ready values."""
    patch = {}
    for key in ENRICHABLE_MESSAGE_FIELDS:
        if key in fields:
            value = fields[key]
            patch[key] = list(value) if key == "keywords" and value is not None else value
    return patch


def sort_books_by_recency(books: Iterable[Book]) -> List[Book]:
    """Most recently active first."""
    return sorted(
        books,
        key=lambda b: b.last_message_time if b.last_message_time is not None else b.added_at,
        reverse=True,
    )
