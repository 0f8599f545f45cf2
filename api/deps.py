from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from doc_chat.exception.custom_exception import AuthorizationError, RateLimitError
from doc_chat.pipeline.orchestrator import Orchestrator
from orchestrator.orchestrator_manager import orchestrator_manager

security = HTTPBearer(auto_error=False)


def get_orchestrator() -> Orchestrator:
    """Return the process-wide Orchestrator (built on first use)."""
    return orchestrator_manager.get_orchestrator()


async def get_current_owner(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    x_user_id: Optional[str] = Header(None),
) -> str:
    """
    Resolve the authenticated owner id.

    Authentication itself happens upstream; this service receives the
    opaque owner id as a bearer token or an X-User-Id header.
    """
    owner = (credentials.credentials if credentials else None) or x_user_id
    if not owner or not owner.strip():
        raise AuthorizationError("Unauthorized")
    return owner.strip()


def enforce_rate_limit(orchestrator: Orchestrator, owner_id: str) -> None:
    """
    Spend one of the owner's request slots or raise RateLimitError.
    Called once the request is known to be well formed, so rejected
    input never counts against the limit.
    """
    if not orchestrator.rate_limiter.allow(owner_id):
        raise RateLimitError("Rate limit exceeded. Please try again later.")
