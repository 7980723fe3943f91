"""Bearer-token authentication dependency."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException


@dataclass
class SessionContext:
    """Authenticated caller resolved from a session token."""
    tenant_id: str
    user_id: str
    email: str
    tenant_name: str = ""
    tenant_domain: str = ""


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def require_session(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> SessionContext:
    """FastAPI dependency that verifies the bearer token and resolves its tenant."""
    token = _bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Access token required")

    from xenofy_engine.common.exceptions import XenofyError
    from xenofy_engine.deps import get_auth_service, get_db

    svc = get_auth_service()
    db = get_db()
    try:
        async with db.get_session() as session:
            return await svc.resolve_session(session, token)
    except XenofyError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
