"""
Security utilities: PIN hashing, JWT tokens, and the acting identity.

Three concerns are handled here:

1. PIN HASHING (Argon2)
   - PINs are never stored in plaintext; only an Argon2id hash is kept
   - passlib's CryptContext verifies in constant time and will transparently
     rehash if the scheme is ever changed ("deprecated='auto'")

2. JWT TOKENS
   - After login the caller receives a signed JWT whose "sub" claim is the
     account number
   - Signed with SECRET_KEY using HS256; expires after
     ACCESS_TOKEN_EXPIRE_MINUTES

3. ACTOR
   - The authorization collaborator consumed by the transaction engine:
     who is acting, and are they the administrative identity?
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from account_ledger.config import settings


# ---------------------------------------------------------------------------
# 1. PIN hashing (Argon2)
# ---------------------------------------------------------------------------

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_pin(pin: str) -> str:
    """Hash a plaintext PIN using Argon2id."""
    return pwd_context.hash(pin)


def verify_pin(pin: str | None, pin_hash: str) -> bool:
    """
    Check a plaintext PIN against the stored hash.

    A missing PIN never matches.
    """
    if not pin:
        return False
    return pwd_context.verify(pin, pin_hash)


# ---------------------------------------------------------------------------
# 2. JWT tokens
# ---------------------------------------------------------------------------


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        data: Claims to encode (must include "sub", the account number).
        expires_delta: Optional custom lifetime. Defaults to
                       ACCESS_TOKEN_EXPIRE_MINUTES from settings.
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Decode and verify a JWT access token.

    Raises:
        JWTError: If the token is expired, tampered with, or invalid.
    """
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


# ---------------------------------------------------------------------------
# 3. Actor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Actor:
    """The authenticated identity a request acts as."""

    account_number: str
    is_admin: bool = False

    def owns(self, account_number: str | None) -> bool:
        return account_number is not None and self.account_number == account_number

    def can_act_on(self, account_number: str | None) -> bool:
        """True for the account's owner or any administrator."""
        return self.is_admin or self.owns(account_number)


def is_admin_account(account_number: str, role: str) -> bool:
    """An account is administrative by role or by being the built-in admin number."""
    return role == "admin" or account_number == settings.ADMIN_ACCOUNT_NUMBER
