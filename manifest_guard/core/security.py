"""Security utilities for JWT decoding and PIN hashing."""
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict
import uuid

from manifest_guard.core.config import settings
from manifest_guard.core.logging import get_logger


logger = get_logger(__name__)

pin_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.PIN_BCRYPT_ROUNDS,
)


class TokenPayload(BaseModel):
    """JWT payload issued by the main back office."""
    model_config = ConfigDict(extra="allow")

    sub: str  # user_id
    email: Optional[str] = None
    role: Optional[str] = None
    type: Optional[str] = "access"
    exp: datetime
    iat: datetime
    app_metadata: dict = {}
    user_metadata: dict = {}


def hash_pin(pin: str) -> str:
    """Hash an override PIN for storage."""
    return pin_context.hash(pin)


def verify_pin_hash(pin: str, pin_hash: str) -> bool:
    """Constant-time check of a PIN against its stored hash."""
    try:
        return pin_context.verify(pin, pin_hash)
    except ValueError:
        # Malformed stored hash
        logger.error("Stored override PIN hash is not a valid bcrypt hash")
        return False


def create_access_token(
    user_id: str,
    role: str,
    email: Optional[str] = None,
    expires_minutes: int = 30,
) -> str:
    """Create an access token (used by tooling and tests)."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "type": "access",
        "exp": now + timedelta(minutes=expires_minutes),
        "iat": now,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[TokenPayload]:
    """Decode and validate a bearer token; ``None`` when invalid."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.warning(f"Token decode error: {e}")
        return None

    app_meta = payload.get("app_metadata", {})
    user_meta = payload.get("user_metadata", {})
    if not payload.get("role"):
        payload["role"] = app_meta.get("role") or user_meta.get("role")

    return TokenPayload(**payload)
