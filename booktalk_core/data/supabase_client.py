# =============================================================================
# booktalk_core/data/supabase_client.py
# Supabase Client Configuration for BookTalk
# =============================================================================

from __future__ import annotations
from typing import Optional

from supabase import Client, create_client

from booktalk_core.config import AppSettings
from booktalk_core.errors import ConfigurationError
from booktalk_core.logging import get_logger

logger = get_logger(__name__)


def get_supabase_client(settings: AppSettings) -> Optional[Client]:
    """
    Create a Supabase client from settings.

    Returns:
        Supabase client instance, or None when no remote is configured
        (the journal then runs in local mode).
    """
    if not settings.remote_configured:
        logger.info("Supabase credentials not found. Running in local mode.")
        return None

    try:
        client: Client = create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        # create_client validates the URL and key format up front
        raise ConfigurationError(f"Failed to initialize Supabase client: {e}", config_key="supabase")

    logger.info("Supabase client initialized")
    return client
