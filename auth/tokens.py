"""
auth/tokens.py -- Session JWTs, password hashing, and link token secrets.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry
       user_id, name and expiry. Verification returns None on any failure --
       the route layer turns that into a 401.

  Passwords: bcrypt. Its cost factor makes brute-force of low-entropy secrets
       expensive. _DUMMY_HASH enables timing equalization in
       authenticate_user() so response time does not reveal whether an email
       is registered.

  Link tokens: secrets.token_urlsafe(16) gives 128 bits from the OS CSPRNG.
       We store HMAC-SHA256(SECRET_KEY, raw_token) so lookup is O(1) and a
       database dump does not contain usable links. bcrypt's slowness is
       unnecessary for high-entropy random values.

Layer rule: imports only from core/ and auth/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("mobihub.auth")

_settings = get_settings()

_ALGORITHM = "HS256"

# 16 bytes = 128 bits of entropy; token_urlsafe encodes to 22 characters.
LINK_TOKEN_BYTES = 16


# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt rejects input over 72 bytes. The credential validator caps
    passwords at 72 UTF-8 bytes, so validated input always hashes.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash. Computed once at module load.
_DUMMY_HASH: str = hash_password("mobihub_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, name: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with user identity and expiry.

    Args:
        user_id:        Numeric user ID stored in the DB.
        name:           User name stored as the JWT subject claim.
        expire_seconds: Session duration. 0 (default) uses
                        Settings.token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    expire = datetime.now(timezone.utc) + timedelta(seconds=duration)
    payload = {
        "sub": name,
        "user_id": user_id,
        "exp": expire,
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure."""
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
        if "user_id" not in payload:
            return None
        return payload
    except JWTError:
        return None


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User | None:
    """Authenticate an email/password login with timing equalization.

    Always runs bcrypt whether or not the account exists, so an attacker
    cannot enumerate registered emails by measuring response times.

    Returns the User on success, None on any failure.
    """
    user = store.get_by_email(email)
    if user is None:
        verify_password(password, _DUMMY_HASH)
        return None
    if not verify_password(password, user.hashed_password):
        return None
    if not user.is_active:
        return None
    return user


# ---------------------------------------------------------------------------
# Link token secrets
# ---------------------------------------------------------------------------


def generate_link_token() -> str:
    """Return a fresh URL-safe link token with 128 bits of entropy."""
    return secrets.token_urlsafe(LINK_TOKEN_BYTES)


def hash_link_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string.

    Deterministic, so the store can look a presented token up by hash.
    Without SECRET_KEY the stored hashes cannot be turned back into links.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helper
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 0) -> None:
    """Write the JWT access token as an httpOnly cookie on the response.

    httponly=True keeps it away from JS; samesite="lax" blocks cross-site
    POSTs; secure follows SECURE_COOKIES; max_age matches the JWT expiry.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.token_expire_seconds
    response.set_cookie(
        "access_token",
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=duration,
    )
