"""External tool API keys.

Only the SHA-256 hash of a key is stored; the raw key is shown once when the
key is issued.
"""

import hashlib
import secrets
from datetime import datetime, timezone
from typing import Any

from app.core.logging import get_logger
from app.db.supabase_client import get_supabase

logger = get_logger(__name__)

KEY_PREFIX = "pat_"


def hash_api_key(raw_key: str) -> str:
    """SHA-256 hex digest of a raw API key."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> str:
    """New random raw API key."""
    return KEY_PREFIX + secrets.token_urlsafe(32)


def create_access_key(
    company_id: str,
    name: str,
    enabled_tools: list[str] | None = None,
    expires_at: datetime | None = None,
) -> tuple[str, dict[str, Any]]:
    """
    Issue an API key for a company.

    Returns:
        (raw key, stored row); the raw key cannot be recovered later

    Raises:
        Exception: If database operation fails
    """
    supabase = get_supabase()

    raw_key = generate_api_key()
    row = {
        "company_id": str(company_id),
        "name": name,
        "key_hash": hash_api_key(raw_key),
        "enabled_tools": enabled_tools,
        "is_active": True,
        "expires_at": expires_at.isoformat() if expires_at else None,
    }

    response = supabase.table("tool_access_keys").insert(row).execute()
    if not response.data:
        raise ValueError("No data returned from create_access_key")

    logger.info(f"Issued tool access key {response.data[0]['id']}", extra={"company_id": str(company_id)})
    return raw_key, response.data[0]


def get_active_key(raw_key: str) -> dict[str, Any] | None:
    """
    Resolve a raw API key to its active, unexpired row.

    Returns:
        Key row or None if unknown, inactive or expired
    """
    supabase = get_supabase()

    response = (
        supabase.table("tool_access_keys")
        .select("*")
        .eq("key_hash", hash_api_key(raw_key))
        .eq("is_active", True)
        .limit(1)
        .execute()
    )
    if not response.data:
        return None

    key = response.data[0]
    expires_at = key.get("expires_at")
    if expires_at:
        expiry = datetime.fromisoformat(str(expires_at).replace("Z", "+00:00"))
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        if expiry <= datetime.now(timezone.utc):
            logger.info(f"Tool access key {key['id']} expired")
            return None

    supabase.table("tool_access_keys").update(
        {"last_used_at": datetime.now(timezone.utc).isoformat()}
    ).eq("id", key["id"]).execute()
    return key
