"""Supabase client for the tool engine.

The service role key bypasses row level security, so every query in app/db
filters by company_id itself. Nothing outside app/db talks to Supabase.
"""

from functools import lru_cache

from supabase import Client, create_client

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Shared service-role client (one per process).

    Raises:
        RuntimeError: If the client cannot be created from settings
    """
    settings = get_settings()
    try:
        client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
    except Exception as e:
        raise RuntimeError(f"Failed to initialize Supabase client for {settings.SUPABASE_URL}: {e}") from e

    logger.debug(f"Supabase client ready ({settings.APP_ENV})")
    return client
