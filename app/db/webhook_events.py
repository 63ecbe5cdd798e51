"""Webhook idempotency keys.

A webhook handler claims the provider's event id before any side effect; a
replayed delivery finds the key already claimed and is skipped.
"""

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)


def claim_event(provider: str, event_id: str) -> bool:
    """
    Record a webhook event id.

    Args:
        provider: Webhook source (twilio, email, web)
        event_id: Provider message id

    Returns:
        True if this call claimed the event, False if it was already seen
    """
    supabase = get_supabase()

    response = (
        supabase.table("webhook_events")
        .upsert(
            {"provider": provider, "event_id": event_id},
            on_conflict="provider,event_id",
            ignore_duplicates=True,
        )
        .execute()
    )
    if not response.data:
        logger.info(f"Skipping replayed {provider} event {event_id}")
        return False
    return True
