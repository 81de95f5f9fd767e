# =============================================================================
# booktalk_core/offline/__init__.py
# Dual-Mode (Cloud / Local) Journal Persistence
# =============================================================================
"""
Persistence and sync layer for the reading journal.

Architecture:
------------
                 ┌──────────────────────────────┐
                 │        JournalService         │
                 │ (Single API - UI uses this)   │
                 └──────────────────────────────┘
                       │                 │
              ┌────────┘                 └────────┐
              ▼                                   ▼
     ┌──────────────────┐              ┌──────────────────┐
     │   ModeSelector   │              │ OptimisticUpdate │
     │ (Cloud -> Local) │              │ (Snapshot/Undo)  │
     └──────────────────┘              └──────────────────┘
              │
     ┌────────┴────────┐
     ▼                 ▼
 ┌─────────────┐  ┌─────────────┐
 │ RemoteStore │  │ LocalStore  │
 │ (Supabase)  │  │  (SQLite)   │
 └─────────────┘  └─────────────┘

Exactly one store is authoritative per session; there is no background sync
between them.

Usage:
------
from booktalk_core.offline import build_journal_service

service = build_journal_service()
await service.start(seed_demo=True)
print(service.mode_selector.mode)
"""

from booktalk_core.offline.store_base import JournalStore

from booktalk_core.offline.local_database import LocalDatabase

from booktalk_core.offline.local_store import (
    LocalStore,
    PROFILE_KEY,
    BOOKS_KEY,
    MESSAGES_KEY_PREFIX,
    messages_key,
)

from booktalk_core.offline.remote_store import (
    RemoteStore,
    ProbeResult,
    UserIdentity,
    translate_api_error,
)

from booktalk_core.offline.mode_selector import (
    ModeSelector,
    ModeState,
    StorageMode,
)

from booktalk_core.offline.optimistic import (
    JournalState,
    OptimisticUpdate,
)

from booktalk_core.offline.backup import (
    build_backup,
    parse_backup,
    validate_backup,
    read_backup_file,
    write_backup_file,
)

from booktalk_core.offline.journal_service import (
    JournalService,
    RetryPolicy,
    ConnectionReport,
    build_journal_service,
)

__all__ = [
    # Store contract
    "JournalStore",
    # Local store
    "LocalDatabase",
    "LocalStore",
    "PROFILE_KEY",
    "BOOKS_KEY",
    "MESSAGES_KEY_PREFIX",
    "messages_key",
    # Remote store
    "RemoteStore",
    "ProbeResult",
    "UserIdentity",
    "translate_api_error",
    # Mode selection
    "ModeSelector",
    "ModeState",
    "StorageMode",
    # Optimistic updates
    "JournalState",
    "OptimisticUpdate",
    # Backup
    "build_backup",
    "parse_backup",
    "validate_backup",
    "read_backup_file",
    "write_backup_file",
    # Sync facade (Main API)
    "JournalService",
    "RetryPolicy",
    "ConnectionReport",
    "build_journal_service",
]
