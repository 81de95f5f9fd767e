# =============================================================================
# booktalk_core/offline/mode_selector.py
# Cloud / Local Storage Mode Selection
# =============================================================================
"""
ModeSelector - decides whether the cloud or the device is authoritative.

Features:
- Starts in CLOUD when a remote is configured, LOCAL otherwise
- One-way downgrade CLOUD -> LOCAL (explicit or after an onboarding failure)
- Event callbacks for the downgrade

Nothing switches back to CLOUD; a new session builds a new ModeSelector.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from booktalk_core.logging import get_logger

logger = get_logger(__name__)


class StorageMode(Enum):
    """Where the journal is persisted."""
    CLOUD = "cloud"
    LOCAL = "local"


@dataclass
class ModeState:
    """Current mode with metadata."""
    mode: StorageMode
    remote_configured: bool
    downgraded_at: Optional[datetime] = None
    reason: Optional[str] = None


class ModeSelector:
    """
    Session-scoped storage mode.

    Usage:
        selector = ModeSelector(remote_configured=settings.remote_configured)
        store = remote_store if selector.is_cloud else local_store
        ...
        selector.downgrade("user chose to continue offline")
    """

    def __init__(self, remote_configured: bool):
        initial = StorageMode.CLOUD if remote_configured else StorageMode.LOCAL
        self._state = ModeState(mode=initial, remote_configured=remote_configured)
        self._callbacks: List[Callable[[ModeState], None]] = []
        logger.info(f"Storage mode: {initial.value}")

    @property
    def state(self) -> ModeState:
        return self._state

    @property
    def mode(self) -> StorageMode:
        return self._state.mode

    @property
    def is_cloud(self) -> bool:
        return self._state.mode == StorageMode.CLOUD

    @property
    def is_downgraded(self) -> bool:
        """True when the session started in CLOUD and fell back to LOCAL."""
        return self._state.downgraded_at is not None

    def downgrade(self, reason: str) -> bool:
        """
        Switch to LOCAL for the rest of the session.

        Returns:
            True if the mode changed, False if already LOCAL
        """
        if self._state.mode == StorageMode.LOCAL:
            return False

        self._state.mode = StorageMode.LOCAL
        self._state.downgraded_at = datetime.now()
        self._state.reason = reason
        logger.warning(f"Storage mode downgraded to local: {reason}")
        self._notify_callbacks()
        return True

    def register_callback(self, callback: Callable[[ModeState], None]) -> None:
        """Register a callback invoked when the mode is downgraded."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ModeState], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in mode callback: {e}")

    def get_status_display(self) -> dict:
        """Get mode information for UI display."""
        return {
            "mode": self._state.mode.value,
            "label": "Cloud Synced" if self.is_cloud else "Local Storage",
            "remote_configured": self._state.remote_configured,
            "downgraded_at": self._state.downgraded_at.isoformat() if self._state.downgraded_at else None,
            "reason": self._state.reason,
        }
