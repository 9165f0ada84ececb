"""
Password hashing, session tokens and password-reset tokens.
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import jwt
from passlib.context import CryptContext

from errors import AuthenticationError

ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


def create_access_token(user_id: str, secret: str, expires_delta: timedelta) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    return jwt.encode({"id": user_id, "exp": expire}, secret, algorithm=ALGORITHM)


def decode_access_token(token: str, secret: str) -> str:
    """Return the user id carried by ``token``."""
    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Json Web Token is expired, try again!") from None
    except jwt.PyJWTError:
        raise AuthenticationError("Json Web Token is invalid, try again!") from None
    user_id = payload.get("id")
    if not user_id:
        raise AuthenticationError("Json Web Token is invalid, try again!")
    return user_id


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_reset_token(
    lifetime: timedelta, now: Optional[datetime] = None
) -> Tuple[str, str, datetime]:
    """
    Create a single-use reset token.

    Returns the plaintext token (to be mailed), its sha256 digest (to be
    stored) and the expiry timestamp.
    """
    token = secrets.token_hex(20)
    now = now or datetime.now(timezone.utc)
    return token, hash_reset_token(token), now + lifetime


def reset_token_valid(stored_hash: Optional[str], expires_at: Optional[datetime], token: str) -> bool:
    if not stored_hash or expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= datetime.now(timezone.utc):
        return False
    return secrets.compare_digest(stored_hash, hash_reset_token(token))
