# =============================================================================
# booktalk_core/offline/backup.py
# Whole-Journal Backup Snapshots
# =============================================================================
"""
Backup format (UTF-8 JSON):

    {
        "version": 1,
        "timestamp": 1718000000000,
        "profile": {...} | null,
        "books": [{...}, ...],
        "messages": {"<bookId>": [{...}, ...]}
    }

Entities use the local (camelCase) field names.
"""

from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from booktalk_core.errors import EntityValidationError, InvalidBackupFormatError
from booktalk_core.logging import get_logger
from booktalk_core.models import Book, Message, Profile

logger = get_logger(__name__)

BACKUP_VERSION = 1
REQUIRED_FIELDS = ("books", "messages")


def build_backup(
    profile: Optional[Profile],
    books: Sequence[Book],
    messages: Mapping[str, Sequence[Message]],
    timestamp: int,
) -> Dict[str, Any]:
    """Assemble a backup document from entities."""
    return {
        "version": BACKUP_VERSION,
        "timestamp": timestamp,
        "profile": profile.to_local() if profile else None,
        "books": [book.to_local() for book in books],
        "messages": {
            book_id: [message.to_local() for message in book_messages]
            for book_id, book_messages in messages.items()
        },
    }


def validate_backup(backup: Any) -> None:
    """Raise InvalidBackupFormatError unless ``backup`` has the required shape."""
    if not isinstance(backup, dict):
        raise InvalidBackupFormatError("Backup must be a JSON object")

    missing = [field for field in REQUIRED_FIELDS if field not in backup]
    if missing:
        raise InvalidBackupFormatError(
            f"Backup is missing required fields: {', '.join(missing)}", missing=missing
        )
    if not isinstance(backup["books"], list):
        raise InvalidBackupFormatError("Backup 'books' must be a list")
    if not isinstance(backup["messages"], dict):
        raise InvalidBackupFormatError("Backup 'messages' must be an object keyed by book id")


def parse_backup(
    backup: Any,
) -> Tuple[Optional[Profile], List[Book], Dict[str, List[Message]]]:
    """Validate and decode a backup into entities."""
    validate_backup(backup)
    try:
        raw_profile = backup.get("profile")
        profile = Profile.from_local(raw_profile) if raw_profile else None
        books = [Book.from_local(item) for item in backup["books"]]
        messages = {
            str(book_id): [Message.from_local(item) for item in items]
            for book_id, items in backup["messages"].items()
        }
    except (EntityValidationError, TypeError, AttributeError, ValueError) as e:
        raise InvalidBackupFormatError(f"Backup contains an invalid entry: {e}")
    return profile, books, messages


def write_backup_file(path: Union[str, Path], backup: Mapping[str, Any]) -> Path:
    """Write a backup document to disk as UTF-8 JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(backup, f, ensure_ascii=False, indent=2)
    logger.info(f"Backup written to {path}")
    return path


def read_backup_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Read a backup document from disk."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            backup = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidBackupFormatError(f"Backup file is not valid JSON: {e}")
    validate_backup(backup)
    return backup
