"""
Authentication module for the botdesk API.

This module provides:
- Bearer token (JWT) signing and validation
- Persisted login sessions used to mint fresh bearer tokens
- One-time email verification codes for signup and password resets
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import HTTPException, status

from ..config import CONFIG
from ..db import DatabaseClient, Subscription, get_database_client


logger = logging.getLogger(__name__)

_JWT_ALGORITHM = "HS256"
_SESSION_CREATE_ATTEMPTS = 5


@dataclass
class TokenPayload:
    """Claims carried by a signed bearer token."""

    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    customer_id: Optional[str] = None
    subscription: Subscription = field(default_factory=Subscription)

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "TokenPayload":
        return cls(
            user_id=str(claims.get("sub")),
            name=claims.get("name"),
            email=claims.get("email"),
            customer_id=claims.get("customer_id"),
            subscription=Subscription.from_document(claims.get("subscription")),
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AuthManager:
    """Issues and validates bearer tokens, sessions and verification codes."""

    def __init__(self, database: Optional[DatabaseClient] = None, secret: Optional[str] = None):
        self.secret = secret or getattr(CONFIG, "access_token_secret", None)
        if not self.secret:
            raise ValueError("ACCESS_TOKEN_SECRET environment variable is required")
        self._database = database

    @property
    def db(self) -> DatabaseClient:
        if self._database is None:
            self._database = get_database_client()
        return self._database

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # ------------------------------------------------------------------
    # Bearer tokens
    # ------------------------------------------------------------------
    def sign_token(self, user: Dict[str, Any]) -> str:
        """Sign a short-lived bearer token for a user document."""

        issued_at = self._now()
        subscription = Subscription.from_document(user.get("subscription"))
        claims = {
            "sub": str(user["_id"]),
            "name": user.get("name"),
            "email": user.get("email"),
            "customer_id": user.get("customer_id"),
            "subscription": subscription.to_document(),
            "iat": issued_at,
            "exp": issued_at + timedelta(minutes=CONFIG.access_token_ttl_minutes),
        }
        return jwt.encode(claims, self.secret, algorithm=_JWT_ALGORITHM)

    def verify_token(self, token: str) -> Optional[TokenPayload]:
        """
        Verify and decode a bearer token.

        Args:
            token: The JWT token to verify

        Returns:
            Decoded payload if valid, None if invalid or expired
        """
        if not token:
            logger.debug("verify_token received empty token")
            return None
        try:
            claims = jwt.decode(token, self.secret, algorithms=[_JWT_ALGORITHM])
        except jwt.InvalidTokenError as exc:
            logger.debug("JWT decode failed: %s", exc)
            return None
        if not claims.get("sub"):
            return None
        return TokenPayload.from_claims(claims)

    def authenticate_request_token(self, authorization_header: Optional[str]) -> Optional[TokenPayload]:
        """
        Extract and validate the JWT from an Authorization header.

        Args:
            authorization_header: The Authorization header value

        Returns:
            Token payload if valid, None if invalid
        """
        if not authorization_header or not authorization_header.startswith("Bearer "):
            return None

        token = authorization_header[7:].strip()  # Remove "Bearer " prefix
        return self.verify_token(token)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    def create_session(self, user_id: Any) -> str:
        """Persist a new session token for ``user_id`` and return it."""

        expiry = self._now() + timedelta(days=CONFIG.session_ttl_days)
        for _ in range(_SESSION_CREATE_ATTEMPTS):
            token = str(uuid.uuid4())
            if self.db.get_access_token(token) is not None:
                continue
            self.db.create_access_token(user_id, token, expiry)
            return token
        raise RuntimeError("Unable to allocate a unique session token")

    def resolve_session(self, token: str) -> Optional[str]:
        """Return the owning user id when the session is live."""

        record = self.db.get_access_token(token)
        if not record or record.get("consumed"):
            return None
        expiry = record.get("expiry_date")
        if not isinstance(expiry, datetime) or _as_utc(expiry) <= self._now():
            return None
        return str(record.get("user"))

    def revoke_session(self, token: str, *, user_id: Any = None) -> bool:
        return self.db.consume_access_token(token, user_id=user_id)

    def revoke_all_sessions(self, user_id: Any) -> int:
        return self.db.consume_user_access_tokens(user_id)

    # ------------------------------------------------------------------
    # Verification codes
    # ------------------------------------------------------------------
    @staticmethod
    def _generate_code() -> int:
        return 100000 + secrets.randbelow(900000)

    def issue_verification_code(self, email: str, purpose: str) -> int:
        """Create a fresh code, retiring any code still pending for the pair."""

        self.db.consume_pending_verification_tokens(email, purpose)
        code = self._generate_code()
        expiry = self._now() + timedelta(minutes=CONFIG.verification_code_ttl_minutes)
        self.db.create_verification_token(email=email, purpose=purpose, code=code, expiry_date=expiry)
        return code

    def check_verification_code(self, email: str, purpose: str, code: int) -> bool:
        record = self.db.find_verification_token(email=email, purpose=purpose, code=code, now=self._now())
        return record is not None

    def consume_verification_code(self, email: str, purpose: str, code: int) -> bool:
        record = self.db.consume_verification_token(email=email, purpose=purpose, code=code, now=self._now())
        return record is not None


# Global auth manager instance
_auth_manager: Optional[AuthManager] = None


def get_auth_manager() -> AuthManager:
    """Get the global AuthManager instance."""
    global _auth_manager
    if _auth_manager is None:
        _auth_manager = AuthManager()
    return _auth_manager


def reset_auth_manager() -> None:
    global _auth_manager
    _auth_manager = None


def require_auth(authorization: Optional[str] = None) -> TokenPayload:
    """
    Require a valid bearer token.

    Args:
        authorization: Authorization header value

    Returns:
        Token payload if authenticated

    Raises:
        HTTPException: If authentication fails
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = get_auth_manager().authenticate_request_token(authorization)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return payload
