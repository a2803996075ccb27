"""FastAPI dependencies shared across the public API."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException, Query, status

from ..auth import TokenPayload, get_auth_manager, require_auth
from ..db import DatabaseClient, Subscription, get_database_client


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    authorization: Optional[str] = Header(None),
    t: Optional[str] = Query(None, description="Bearer token for links that cannot send headers."),
) -> TokenPayload:
    """Resolve the caller from the Authorization header or the ``t`` query parameter."""

    if authorization:
        return require_auth(authorization)

    if t:
        payload = get_auth_manager().verify_token(t.strip())
        if payload is None:
            raise _unauthorized("Invalid or expired token")
        return payload

    raise _unauthorized("Authorization header required")


def get_database() -> DatabaseClient:
    """Return the shared database client instance."""

    return get_database_client()


def get_current_user_record(
    user: TokenPayload = Depends(get_current_user),
    db: DatabaseClient = Depends(get_database),
) -> Dict[str, Any]:
    """Load the stored user behind a valid token."""

    record = db.get_user(user.user_id)
    if record is None:
        raise _unauthorized("User no longer exists")
    return record


def require_subscription(record: Dict[str, Any] = Depends(get_current_user_record)) -> Dict[str, Any]:
    """Allow only users whose mirrored subscription is set."""

    subscription = Subscription.from_document(record.get("subscription"))
    if not subscription.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User doesn't have a subscription.",
        )
    return record
