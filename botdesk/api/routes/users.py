"""Account endpoints: login, sessions, signup and password resets."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pymongo.errors import DuplicateKeyError

from ...auth import TokenPayload, get_auth_manager, hash_password, verify_password
from ...billing import BillingProviderError, ProviderNotConfiguredError, get_billing_provider
from ...config import CONFIG
from ...db import DatabaseClient, VerificationPurpose
from ...services.mail import MailDeliveryError, MailNotConfiguredError, get_mail_service
from ..dependencies import get_current_user, get_current_user_record, get_database
from ..schemas import (
    AccessTokenRequest,
    EmailRequest,
    LoginRequest,
    PasswordResetRequest,
    SignedTokenResponse,
    SignupSubmitRequest,
    TokenResponse,
    UserProfile,
    VerificationCodeRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _issue_tokens(user: Dict[str, Any]) -> TokenResponse:
    auth_manager = get_auth_manager()
    access_token = auth_manager.create_session(user["_id"])
    return TokenResponse(token=auth_manager.sign_token(user), access_token=access_token)


def _require_password_policy(password: str) -> None:
    if len(password or "") < CONFIG.password_min_length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {CONFIG.password_min_length} characters long.",
        )


def _send_code(purpose: VerificationPurpose, email: str, code: int, name: str | None = None) -> None:
    try:
        get_mail_service().send_verification_code(purpose, email=email, code=code, name=name)
    except MailNotConfiguredError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except MailDeliveryError as exc:
        logger.warning("Verification mail to %s failed: %s", email, exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Couldn't send the verification code.",
        ) from exc


def _invalid_code() -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired verification code.")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
@router.post("/users/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def login(payload: LoginRequest, db: DatabaseClient = Depends(get_database)) -> TokenResponse:
    """Exchange email and password for a bearer token and a session token."""

    user = db.get_user_by_email(payload.email)
    if not user or not verify_password(payload.password, user.get("password_hash") or ""):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _issue_tokens(user)


@router.post("/users/validate-token", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def validate_token(payload: AccessTokenRequest, db: DatabaseClient = Depends(get_database)) -> TokenResponse:
    """Mint a fresh bearer token from a live session token."""

    auth_manager = get_auth_manager()
    user_id = auth_manager.resolve_session(payload.access_token)
    user = db.get_user(user_id) if user_id else None
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return TokenResponse(token=auth_manager.sign_token(user), access_token=payload.access_token)


@router.post("/users/sign-new-token", response_model=SignedTokenResponse, status_code=status.HTTP_200_OK)
def sign_new_token(user: Dict[str, Any] = Depends(get_current_user_record)) -> SignedTokenResponse:
    """Re-sign the bearer token so it reflects the stored subscription."""

    return SignedTokenResponse(token=get_auth_manager().sign_token(user))


@router.post("/users/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(payload: AccessTokenRequest, user: TokenPayload = Depends(get_current_user)) -> Response:
    get_auth_manager().revoke_session(payload.access_token, user_id=user.user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/users/me", response_model=UserProfile, status_code=status.HTTP_200_OK)
def get_me(user: Dict[str, Any] = Depends(get_current_user_record)) -> UserProfile:
    """Return the authenticated user's profile."""

    return UserProfile.from_document(user)


# ---------------------------------------------------------------------------
# Signup
# ---------------------------------------------------------------------------
@router.post("/users/signup-request", status_code=status.HTTP_204_NO_CONTENT)
def signup_request(payload: EmailRequest, db: DatabaseClient = Depends(get_database)) -> Response:
    """Email a signup verification code to an unregistered address."""

    if db.get_user_by_email(payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="That email is already registered.")

    code = get_auth_manager().issue_verification_code(payload.email, VerificationPurpose.SIGNUP.value)
    _send_code(VerificationPurpose.SIGNUP, payload.email, code)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/users/signup-confirmation", status_code=status.HTTP_204_NO_CONTENT)
def signup_confirmation(payload: VerificationCodeRequest) -> Response:
    if not get_auth_manager().check_verification_code(payload.email, VerificationPurpose.SIGNUP.value, payload.code):
        raise _invalid_code()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/users/signup-submit", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup_submit(payload: SignupSubmitRequest, db: DatabaseClient = Depends(get_database)) -> TokenResponse:
    """Create the account once the signup code checks out."""

    _require_password_policy(payload.password)
    if db.get_user_by_email(payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="That email is already registered.")

    auth_manager = get_auth_manager()
    purpose = VerificationPurpose.SIGNUP.value
    if not auth_manager.check_verification_code(payload.email, purpose, payload.code):
        raise _invalid_code()

    try:
        customer_id = get_billing_provider().create_customer(name=payload.name, email=payload.email)
    except ProviderNotConfiguredError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except BillingProviderError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    if not auth_manager.consume_verification_code(payload.email, purpose, payload.code):
        logger.warning("Signup code for %s was used concurrently; customer %s has no user", payload.email, customer_id)
        raise _invalid_code()

    try:
        user = db.create_user(
            name=payload.name,
            email=payload.email,
            password_hash=hash_password(payload.password),
            customer_id=customer_id,
        )
    except DuplicateKeyError as exc:
        logger.warning("Signup for %s raced an existing account; customer %s has no user", payload.email, customer_id)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="That email is already registered.") from exc

    logger.info("Created user %s", user["_id"])
    return _issue_tokens(user)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------
@router.post("/users/forgot-password-request", status_code=status.HTTP_204_NO_CONTENT)
def forgot_password_request(payload: EmailRequest, db: DatabaseClient = Depends(get_database)) -> Response:
    """Email a reset code; the reply is identical whether or not the account exists."""

    user = db.get_user_by_email(payload.email)
    if user:
        code = get_auth_manager().issue_verification_code(payload.email, VerificationPurpose.FORGOT_PASSWORD.value)
        _send_code(VerificationPurpose.FORGOT_PASSWORD, payload.email, code, name=user.get("name"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/users/forgot-password-confirmation", status_code=status.HTTP_204_NO_CONTENT)
def forgot_password_confirmation(payload: VerificationCodeRequest) -> Response:
    purpose = VerificationPurpose.FORGOT_PASSWORD.value
    if not get_auth_manager().check_verification_code(payload.email, purpose, payload.code):
        raise _invalid_code()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/users/forgot-password-submit", status_code=status.HTTP_204_NO_CONTENT)
def forgot_password_submit(payload: PasswordResetRequest, db: DatabaseClient = Depends(get_database)) -> Response:
    """Set a new password and sign out every existing session."""

    _require_password_policy(payload.password)
    auth_manager = get_auth_manager()
    if not auth_manager.consume_verification_code(
        payload.email, VerificationPurpose.FORGOT_PASSWORD.value, payload.code
    ):
        raise _invalid_code()

    user = db.get_user_by_email(payload.email)
    if not user:
        raise _invalid_code()

    db.update_user_password(user["_id"], hash_password(payload.password))
    revoked = auth_manager.revoke_all_sessions(user["_id"])
    logger.info("Password reset for user %s revoked %s sessions", user["_id"], revoked)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
