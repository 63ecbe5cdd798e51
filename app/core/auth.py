"""Authentication dependencies for FastAPI.

Two callers reach this service:

1. Internal orchestrators and the tool invoker's http transport, which present
   the service role key as a Bearer token.
2. External integrations and the approval UI backend, which present a
   company-scoped API key in the X-API-Key header (see app/db/tool_access_keys.py).
"""

import hmac
import logging
from typing import Any, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings
from app.core.security_context import SecurityContext, build_admin_context
from app.db.tool_access_keys import get_active_key

logger = logging.getLogger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)


class ApiKeyContext:
    """Context object for a request authenticated by API key."""

    def __init__(self, key: dict[str, Any]):
        self.key = key
        self.key_id = str(key["id"])
        self.company_id = str(key["company_id"])

    @property
    def enabled_tools(self) -> list[str] | None:
        """Explicit tool allow-list; None means every tool."""
        tools = self.key.get("enabled_tools")
        return list(tools) if tools is not None else None


async def require_service_key(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Require the service role key as Bearer token."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    expected = get_settings().SUPABASE_SERVICE_ROLE_KEY
    if not hmac.compare_digest(credentials.credentials, expected):
        logger.warning("Rejected tool call with invalid service key")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid service key")


async def require_api_key(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
) -> ApiKeyContext:
    """Resolve the X-API-Key header to an active, unexpired key."""
    if not x_api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="API key required")

    key = get_active_key(x_api_key)
    if key is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired API key")

    logger.debug(f"Authenticated via API key {key['id']}")
    return ApiKeyContext(key)


async def get_admin_context(
    api_key: ApiKeyContext = Depends(require_api_key),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> SecurityContext:
    """
    Admin security context for the approval UI.

    The acting user is taken from X-User-Id (for approved_by attribution);
    the company always comes from the API key.
    """
    return build_admin_context(api_key.company_id, x_user_id or f"api-key:{api_key.key_id}")
