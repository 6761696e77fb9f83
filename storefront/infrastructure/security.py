"""Password hashing, passcode hashing, and access tokens.

Passwords and one-time passcodes are hashed with argon2 through passlib.
Access tokens are HS256 JWTs carrying the principal id and role.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from passlib.context import CryptContext

from storefront.infrastructure.config import settings

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")

# Verified against when no passcode record exists so both paths cost a hash check
_DUMMY_CODE_HASH = pwd_context.hash("000000")


class TokenError(Exception):
    """Raised when an access token cannot be decoded or is expired."""


@dataclass(frozen=True)
class TokenClaims:
    """Decoded access token claims."""

    subject: str
    role: str
    expires_at: datetime


# ============================================================================
# Hashing
# ============================================================================


def hash_password(password: str) -> str:
    """Hash a plaintext password."""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plaintext password against its stored hash."""
    return pwd_context.verify(password, password_hash)


def hash_code(code: str) -> str:
    """Hash a one-time passcode for storage."""
    return pwd_context.hash(code)


def verify_code(code: str, code_hash: str | None) -> bool:
    """Check a submitted passcode against a stored hash.

    Args:
        code: Code entered by the user.
        code_hash: Stored hash, or None when there is no live record.

    Returns:
        True only when a hash was given and matches.
    """
    if code_hash is None:
        pwd_context.verify(code, _DUMMY_CODE_HASH)
        return False
    return pwd_context.verify(code, code_hash)


def generate_numeric_code(length: int | None = None) -> str:
    """Generate a random zero-padded numeric passcode.

    Args:
        length: Number of digits, defaults to the configured OTP length.

    Returns:
        Passcode string such as "042917".
    """
    digits = length or settings.otp_length
    return f"{secrets.randbelow(10**digits):0{digits}d}"


# ============================================================================
# Access Tokens
# ============================================================================


def issue_access_token(subject: str, role: str, expires_minutes: int | None = None) -> str:
    """Issue a signed access token.

    Args:
        subject: Principal identifier.
        role: Principal role ("user" or "admin").
        expires_minutes: Lifetime override.

    Returns:
        Encoded JWT.
    """
    now = datetime.now(timezone.utc)
    lifetime = timedelta(minutes=expires_minutes or settings.jwt_expires_minutes)
    payload: dict[str, Any] = {
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenClaims:
    """Decode and validate an access token.

    Args:
        token: Encoded JWT.

    Returns:
        Decoded claims.

    Raises:
        TokenError: If the token is malformed, tampered with or expired.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "role", "exp"]},
        )
    except jwt.PyJWTError as e:
        raise TokenError(str(e)) from e

    return TokenClaims(
        subject=payload["sub"],
        role=payload["role"],
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
