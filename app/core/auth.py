"""Current-principal provider: Supabase JWT verification mapped to a users row."""

import logging
import time
import uuid as uuid_lib
from typing import Optional, Dict, Any
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from pydantic import BaseModel
import httpx
from jose import jwt, jwk
from jose.exceptions import JWTError, JWKError, ExpiredSignatureError, JWTClaimsError

from app.db.session import get_db
from app.models.user import User
from app.core.config import settings

logger = logging.getLogger(__name__)

# Security scheme for Bearer token
security = HTTPBearer()

# JWKS cache with TTL
_jwks_cache: Optional[Dict[str, Any]] = None
_jwks_cache_time: float = 0
JWKS_CACHE_TTL = 600  # 10 minutes in seconds

SUPPORTED_ALGORITHMS = ["ES256", "RS256"]


def _unauthorized(detail: str = "Token verification failed") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def fetch_jwks() -> Dict[str, Any]:
    """
    Fetch JWKS from the Supabase endpoint, cached for JWKS_CACHE_TTL.

    Falls back to an expired cache when the endpoint is unreachable.

    Raises:
        HTTPException: 503 if JWKS cannot be fetched and nothing is cached
    """
    global _jwks_cache, _jwks_cache_time

    current_time = time.time()
    if _jwks_cache is not None and (current_time - _jwks_cache_time) < JWKS_CACHE_TTL:
        logger.debug("Using cached JWKS")
        return _jwks_cache

    try:
        logger.info("Fetching JWKS from %s", settings.supabase_jwks_url)
        response = httpx.get(settings.supabase_jwks_url, timeout=10.0)
        response.raise_for_status()
        jwks_data = response.json()

        if not isinstance(jwks_data, dict) or "keys" not in jwks_data:
            raise ValueError("Invalid JWKS structure: missing 'keys' field")

        _jwks_cache = jwks_data
        _jwks_cache_time = current_time
        logger.info("JWKS fetched successfully, %d keys found", len(jwks_data.get("keys", [])))
        return jwks_data

    except (httpx.HTTPError, ValueError) as e:
        logger.error("Failed to fetch JWKS: %s", e)
        if _jwks_cache is not None:
            logger.warning("Using expired JWKS cache due to fetch failure")
            return _jwks_cache
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Unable to verify token: JWKS endpoint unavailable"
        )


def get_signing_key(token: str, jwks: Dict[str, Any]) -> Dict[str, Any]:
    """Find the JWK matching the token header's kid."""
    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as e:
        logger.warning("Malformed token header: %s", e)
        raise _unauthorized()

    kid = unverified_header.get("kid")
    if not kid:
        logger.warning("Token missing 'kid' in header")
        raise _unauthorized()

    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key

    logger.warning("Key ID '%s' not found in JWKS", kid)
    raise _unauthorized()


class Identity(BaseModel):
    """Represents the authenticated identity from the token."""
    provider: str
    uid: str
    email: Optional[str] = None


def _normalize_supabase_uid(uid: uuid_lib.UUID | str) -> uuid_lib.UUID:
    """Normalize Supabase UID (JWT sub) to uuid.UUID for storage/lookup."""
    if isinstance(uid, uuid_lib.UUID):
        return uid
    try:
        return uuid_lib.UUID(str(uid))
    except (ValueError, TypeError) as e:
        logger.warning("Invalid external_auth_uid format: %r -> %s", uid, e)
        raise _unauthorized("Invalid subject (sub) claim in token")


def get_or_create_user_for_supabase_uid(
    db: Session,
    *,
    external_auth_uid: str,
    external_auth_provider: str | None = None,
    email: str | None = None,
) -> User:
    """
    Get existing user by Supabase UID (JWT sub), or create one if none exists.
    Idempotent: on duplicate key (concurrent first requests) re-queries and
    returns the existing user.
    """
    uid_str = str(_normalize_supabase_uid(external_auth_uid))
    user = db.query(User).filter(User.external_auth_uid == uid_str).first()
    if user:
        if email is not None and user.email is None:
            user.email = email
            db.commit()
            db.refresh(user)
        return user

    logger.info("Creating new user for external_auth_uid=%s, provider=%s", uid_str, external_auth_provider)
    user = User(
        external_auth_uid=uid_str,
        external_auth_provider=external_auth_provider or "email",
        email=email,
    )
    db.add(user)
    try:
        db.commit()
        db.refresh(user)
        return user
    except IntegrityError:
        db.rollback()
        user = db.query(User).filter(User.external_auth_uid == uid_str).first()
        if user is not None:
            return user
        raise


def verify_supabase_token(token: str) -> dict:
    """
    Verify a Supabase JWT (signature via JWKS, issuer, audience, expiry) and return its claims.

    Raises:
        HTTPException: 401 if verification fails
    """
    jwks = fetch_jwks()
    jwk_key = get_signing_key(token, jwks)

    try:
        key = jwk.construct(jwk_key)
    except JWKError as e:
        logger.error("Failed to construct key from JWK: %s", e)
        raise _unauthorized()

    header_alg = jwt.get_unverified_header(token).get("alg")
    jwk_alg = jwk_key.get("alg")
    if header_alg and jwk_alg and header_alg != jwk_alg:
        logger.warning("Algorithm mismatch: header=%s, JWK=%s", header_alg, jwk_alg)
        raise _unauthorized()
    algorithm = header_alg or jwk_alg or "ES256"
    if algorithm not in SUPPORTED_ALGORITHMS:
        logger.warning("Unsupported algorithm: %s", algorithm)
        raise _unauthorized()

    try:
        payload = jwt.decode(
            token,
            key,
            algorithms=SUPPORTED_ALGORITHMS,
            audience=settings.supabase_jwt_audience,
            issuer=settings.supabase_issuer,
            options={
                "verify_signature": True,
                "verify_aud": True,
                "verify_iss": True,
                "verify_exp": True,
            }
        )
    except ExpiredSignatureError:
        logger.warning("Token has expired")
        raise _unauthorized()
    except JWTClaimsError as e:
        logger.warning("Token claims validation failed: %s", e)
        raise _unauthorized()
    except JWTError as e:
        logger.warning("JWT verification error: %s", e)
        raise _unauthorized()

    logger.debug("Token verified successfully for sub: %s", payload.get("sub"))
    return payload


def identity_from_claims(claims: dict) -> Identity:
    uid = claims.get("sub")
    if not uid:
        logger.warning("Token missing subject (sub) claim")
        raise _unauthorized("Token missing subject (sub) claim")

    # Supabase stores the OAuth provider in app_metadata; email/password has none
    provider = (claims.get("app_metadata") or {}).get("provider") or "email"
    return Identity(provider=provider, uid=uid, email=claims.get("email"))


def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Identity:
    """Extract and verify identity from the Supabase Bearer token."""
    token = credentials.credentials
    if not token:
        raise _unauthorized("Missing token")
    return identity_from_claims(verify_supabase_token(token))


def get_current_user(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db)
) -> User:
    """The current principal: the users row for the authenticated Supabase identity (strict 1:1)."""
    return get_or_create_user_for_supabase_uid(
        db,
        external_auth_uid=identity.uid,
        external_auth_provider=identity.provider or None,
        email=identity.email,
    )


def authenticate_token(db: Session, token: str | None) -> User:
    """Resolve a raw token (e.g. WebSocket query parameter) to the current principal."""
    if not token:
        raise _unauthorized("Missing token")
    identity = identity_from_claims(verify_supabase_token(token))
    return get_or_create_user_for_supabase_uid(
        db,
        external_auth_uid=identity.uid,
        external_auth_provider=identity.provider,
        email=identity.email,
    )
