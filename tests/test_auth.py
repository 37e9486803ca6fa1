"""
Tests for Supabase JWT verification and principal resolution.
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import httpx
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

import app.core.auth as auth
from app.core.auth import (
    authenticate_token,
    fetch_jwks,
    get_current_identity,
    get_or_create_user_for_supabase_uid,
    verify_supabase_token,
)
from app.models.user import User
from tests.conftest import TEST_SUPABASE_UID_1, TEST_SUPABASE_UID_2


@pytest.fixture(autouse=True)
def reset_jwks_cache():
    """Reset the module-level JWKS cache around each test."""
    auth._jwks_cache = None
    auth._jwks_cache_time = 0
    yield
    auth._jwks_cache = None
    auth._jwks_cache_time = 0


def test_verify_valid_token(mock_jwks, create_test_token):
    token = create_test_token(sub=TEST_SUPABASE_UID_1, email="owner@example.com")

    claims = verify_supabase_token(token)

    assert claims["sub"] == TEST_SUPABASE_UID_1
    assert claims["email"] == "owner@example.com"


@pytest.mark.parametrize(
    "overrides",
    [
        {"iss": "https://wrong-issuer.com/auth/v1"},
        {"aud": "wrong-audience"},
        {"exp": int((datetime.now(timezone.utc) - timedelta(hours=1)).timestamp())},
        {"kid": "non-existent-key-id"},
    ],
)
def test_verify_rejects_bad_tokens(mock_jwks, create_test_token, overrides):
    token = create_test_token(**overrides)

    with pytest.raises(HTTPException) as exc_info:
        verify_supabase_token(token)
    assert exc_info.value.status_code == 401


def test_verify_rejects_malformed_token(mock_jwks):
    with pytest.raises(HTTPException) as exc_info:
        verify_supabase_token("not-a-jwt")
    assert exc_info.value.status_code == 401


def test_get_current_identity_extracts_claims(mock_jwks, create_test_token):
    token = create_test_token(sub=TEST_SUPABASE_UID_2, email="buyer@example.com")
    credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)

    identity = get_current_identity(credentials)

    assert identity.uid == TEST_SUPABASE_UID_2
    assert identity.email == "buyer@example.com"
    assert identity.provider == "email"  # no app_metadata.provider claim


def test_get_current_identity_missing_token():
    credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="")
    with pytest.raises(HTTPException):
        get_current_identity(credentials)


def test_get_or_create_user_is_idempotent(db_session):
    first = get_or_create_user_for_supabase_uid(db_session, external_auth_uid=TEST_SUPABASE_UID_1, email="a@example.com")
    second = get_or_create_user_for_supabase_uid(db_session, external_auth_uid=TEST_SUPABASE_UID_1)

    assert first.id == second.id
    assert db_session.query(User).count() == 1


def test_get_or_create_user_rejects_non_uuid_subject(db_session):
    with pytest.raises(HTTPException) as exc_info:
        get_or_create_user_for_supabase_uid(db_session, external_auth_uid="test-user-123")
    assert exc_info.value.status_code == 401


def test_authenticate_token_resolves_principal(db_session, owner, mock_jwks, create_test_token):
    token = create_test_token(sub=owner.external_auth_uid, email=owner.email)
    assert authenticate_token(db_session, token).id == owner.id


def test_authenticate_token_requires_token(db_session):
    with pytest.raises(HTTPException) as exc_info:
        authenticate_token(db_session, None)
    assert exc_info.value.status_code == 401


def test_fetch_jwks_caches_and_falls_back_to_stale_cache():
    jwks = {"keys": [{"kid": "k1"}]}
    response = httpx.Response(200, json=jwks, request=httpx.Request("GET", "http://localhost/jwks"))

    with patch("app.core.auth.httpx.get", return_value=response) as mock_get:
        assert fetch_jwks() == jwks
        assert fetch_jwks() == jwks
    assert mock_get.call_count == 1

    auth._jwks_cache_time = 0  # expire
    with patch("app.core.auth.httpx.get", side_effect=httpx.ConnectError("down")):
        assert fetch_jwks() == jwks


def test_fetch_jwks_unavailable_without_cache():
    with patch("app.core.auth.httpx.get", side_effect=httpx.ConnectError("down")):
        with pytest.raises(HTTPException) as exc_info:
            fetch_jwks()
    assert exc_info.value.status_code == 503


def test_protected_endpoint_requires_auth(client):
    response = client.get("/api/v1/notifications")
    assert response.status_code in (401, 403)
