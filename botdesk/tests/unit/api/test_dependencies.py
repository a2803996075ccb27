"""Tests for shared FastAPI dependency helpers."""

from __future__ import annotations

import pytest
from fastapi import HTTPException

from botdesk.api import dependencies
from botdesk.auth import AuthManager, TokenPayload
from botdesk.db import Subscription


def test_get_current_user_requires_credentials() -> None:
    with pytest.raises(HTTPException) as exc:
        dependencies.get_current_user(authorization=None, t=None)

    assert exc.value.status_code == 401
    assert exc.value.headers == {"WWW-Authenticate": "Bearer"}


def test_get_current_user_prefers_header(monkeypatch: pytest.MonkeyPatch) -> None:
    payload = TokenPayload(user_id="user-123")
    monkeypatch.setattr(dependencies, "require_auth", lambda header: payload)

    result = dependencies.get_current_user("Bearer abc", t="ignored")
    assert result is payload


def test_get_current_user_accepts_query_token(stub_db) -> None:
    user = stub_db.create_user(name="Ada", email="ada@example.com", password_hash="x", customer_id=None)
    token = AuthManager(database=stub_db).sign_token(user)

    result = dependencies.get_current_user(authorization=None, t=token)
    assert result.user_id == str(user["_id"])
    assert result.email == "ada@example.com"


def test_get_current_user_rejects_bad_query_token() -> None:
    with pytest.raises(HTTPException) as exc:
        dependencies.get_current_user(authorization=None, t="not-a-jwt")

    assert exc.value.status_code == 401


def test_get_current_user_record_rejects_deleted_user(stub_db) -> None:
    with pytest.raises(HTTPException) as exc:
        dependencies.get_current_user_record(TokenPayload(user_id="65a0c0ffee0000000000abcd"), stub_db)

    assert exc.value.status_code == 401


def test_require_subscription_rejects_missing_subscription(stub_db) -> None:
    user = stub_db.create_user(name="Ada", email="ada@example.com", password_hash="x", customer_id="cus_1")

    with pytest.raises(HTTPException) as exc:
        dependencies.require_subscription(user)

    assert exc.value.status_code == 403
    assert exc.value.detail == "User doesn't have a subscription."


def test_require_subscription_reads_stored_record(stub_db) -> None:
    user = stub_db.create_user(name="Ada", email="ada@example.com", password_hash="x", customer_id="cus_1")
    stub_db.set_user_subscription(user["_id"], Subscription(status="active", subscription_id="sub_1"))

    assert dependencies.require_subscription(user) is user
