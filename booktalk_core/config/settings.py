# =============================================================================
# booktalk_core/config/settings.py
# Application settings from environment, .env and secrets.toml
# =============================================================================
"""
Settings loader.

Resolution order (first hit wins):
    1. Environment variables (after ``.env`` is loaded by python-dotenv)
    2. ``secrets.toml``:

        [supabase]
        url = "https://your-project.supabase.co"
        key = "your-anon-key"

        [openai]
        api_key = "sk-..."

        [logging]
        level = "debug"
        file = "local_data/booktalk.log"

    3. Built-in defaults
"""

from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import toml
from dotenv import load_dotenv

from booktalk_core.errors import ConfigurationError
from booktalk_core.logging import get_logger, resolve_level, setup_logging

logger = get_logger(__name__)

DEFAULT_SECRETS_PATH = Path(".booktalk") / "secrets.toml"
DEFAULT_DB_PATH = Path("local_data") / "booktalk.db"
DEFAULT_AI_MODEL = "gpt-4o-mini"

# Left in templates by people who copied the example secrets file
PLACEHOLDER_MARKERS = ("YOUR_SUPABASE", "your-project", "your-anon-key")


@dataclass
class AppSettings:
    """Resolved application settings."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    local_db_path: Path = DEFAULT_DB_PATH
    openai_api_key: Optional[str] = None
    ai_model: str = DEFAULT_AI_MODEL
    retry_attempts: int = 3
    retry_initial_delay: float = 0.5
    retry_backoff_base: float = 2.0
    log_level: Optional[str] = None
    log_file: Optional[Path] = None

    def configure_logging(self) -> bool:
        """Apply ``log_level`` / ``log_file``. Returns False when neither is set."""
        if self.log_level is None and self.log_file is None:
            return False
        setup_logging(level=self.log_level or "INFO", log_file=self.log_file)
        return True

    @property
    def remote_configured(self) -> bool:
        """True when both an endpoint and a credential are present."""
        if not self.supabase_url or not self.supabase_key:
            return False
        return not any(marker in self.supabase_url for marker in PLACEHOLDER_MARKERS)

    @property
    def ai_configured(self) -> bool:
        return bool(self.openai_api_key)


def _load_secrets(secrets_path: Path) -> Dict[str, Any]:
    """Read secrets.toml, returning an empty dict when it is absent."""
    if not secrets_path.exists():
        return {}
    try:
        return toml.load(secrets_path)
    except toml.TomlDecodeError as e:
        raise ConfigurationError(f"Invalid secrets file: {e}", config_key=str(secrets_path))


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}", config_key=name)


def load_settings(
    secrets_path: Optional[Union[str, Path]] = None,
    load_env_file: bool = True,
) -> AppSettings:
    """
    Load settings from the environment and an optional secrets file.

    Args:
        secrets_path: Path to secrets.toml (default: .booktalk/secrets.toml)
        load_env_file: Whether to read a .env file first

    Returns:
        AppSettings instance
    """
    if load_env_file:
        load_dotenv()

    secrets = _load_secrets(Path(secrets_path) if secrets_path else DEFAULT_SECRETS_PATH)
    supabase_secrets = secrets.get("supabase", {})
    openai_secrets = secrets.get("openai", {})
    logging_secrets = secrets.get("logging", {})
    log_file = os.getenv("BOOKTALK_LOG_FILE") or logging_secrets.get("file")

    settings = AppSettings(
        supabase_url=os.getenv("SUPABASE_URL") or supabase_secrets.get("url"),
        supabase_key=os.getenv("SUPABASE_KEY") or supabase_secrets.get("key"),
        local_db_path=Path(os.getenv("BOOKTALK_DB_PATH") or DEFAULT_DB_PATH),
        openai_api_key=os.getenv("OPENAI_API_KEY") or openai_secrets.get("api_key"),
        ai_model=os.getenv("BOOKTALK_AI_MODEL") or openai_secrets.get("model", DEFAULT_AI_MODEL),
        retry_attempts=_int_env("BOOKTALK_RETRY_ATTEMPTS", 3),
        log_level=os.getenv("BOOKTALK_LOG_LEVEL") or logging_secrets.get("level"),
        log_file=Path(log_file) if log_file else None,
    )

    if settings.retry_attempts < 1:
        raise ConfigurationError("BOOKTALK_RETRY_ATTEMPTS must be at least 1", config_key="BOOKTALK_RETRY_ATTEMPTS")
    if settings.log_level is not None:
        try:
            resolve_level(settings.log_level)
        except ValueError as e:
            raise ConfigurationError(str(e), config_key="BOOKTALK_LOG_LEVEL")

    logger.info(
        f"Settings loaded. Remote configured: {settings.remote_configured}, "
        f"AI configured: {settings.ai_configured}"
    )
    return settings
