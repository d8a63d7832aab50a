"""Security utilities: identity tokens and invite codes."""

import secrets
from datetime import datetime, timedelta, timezone

import jwt

from snapsync.config import settings

INVITE_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"


# --- JWT Tokens ---

def create_access_token(user_id: str, email: str = "") -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": user_id,
        "email": email,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


# --- Invite codes ---

def generate_invite_code(length: int | None = None) -> str:
    """Generate a random uppercase alphanumeric invite code."""
    n = length or settings.invite_code_length
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(n))


def normalize_invite_code(raw: str) -> str:
    """Uppercase and drop everything outside [A-Z0-9]."""
    return "".join(c for c in raw.upper() if c in INVITE_CODE_ALPHABET)
