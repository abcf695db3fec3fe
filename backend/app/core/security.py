"""
Security utilities: broker password hashing, secret generation, Supabase JWT decoding.
"""

import secrets
from dataclasses import dataclass, field
from passlib.context import CryptContext
from jose import jwt, JWTError

from app.config import get_settings

# ── Password Hashing ────────────────────────────────────
# argon2 for new hashes; bcrypt hashes still verify.
pwd_context = CryptContext(schemes=["argon2", "bcrypt"], deprecated="auto")

DEVICE_TOKEN_LENGTH = 64
MQTT_PASSWORD_BYTES = 24


def hash_for_storage(password: str) -> str:
    """Hash a broker password for storage (salted argon2)."""
    return pwd_context.hash(password)


def verify_stored_hash(plain_password: str, hashed_password: str | None) -> bool:
    """Check a plaintext password against a stored hash."""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


# ── Secret Generation ───────────────────────────────────
def generate_secure_password() -> str:
    """Random broker password: 24 bytes from the OS CSPRNG, base64url (32 chars)."""
    return secrets.token_urlsafe(MQTT_PASSWORD_BYTES)


def generate_device_token() -> str:
    """Random 64-char provisioning token (hex of 32 random bytes)."""
    return secrets.token_hex(DEVICE_TOKEN_LENGTH // 2)


# ── Verified Identity ────────────────────────────────────
@dataclass(frozen=True)
class UserIdentity:
    """A caller verified by the identity provider."""
    id: str
    access_token: str = field(repr=False)
    email: str | None = None


# ── JWT Token ────────────────────────────────────────────
SUPABASE_JWT_ALGORITHM = "HS256"
SUPABASE_JWT_AUDIENCE = "authenticated"


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a Supabase access token locally.

    Returns the payload, or None if the signature, expiry or audience is invalid.
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[SUPABASE_JWT_ALGORITHM],
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except JWTError:
        return None
