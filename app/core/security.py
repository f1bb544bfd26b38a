"""Credential hashing, reset-token digests and signed session tokens."""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt

from ..domain.models import Account

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12
# bcrypt only looks at the first 72 bytes of the secret.
BCRYPT_MAX_BYTES = 72


def hash_password(plain_password: str, rounds: int = BCRYPT_ROUNDS) -> str:
    """Hash a plain-text password for storage. Never store the plain value."""
    pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    return bcrypt.hashpw(pw_bytes, bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    pw_bytes = plain_password.encode("utf-8")[:BCRYPT_MAX_BYTES]
    try:
        return bcrypt.checkpw(pw_bytes, hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def generate_reset_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """SHA-256 digest used as the storage key for reset tokens."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class IssuedToken:
    token: str
    token_id: str
    expires_at: datetime


class SessionTokenService:
    """Issues and verifies the bearer tokens that carry a session between requests."""

    def __init__(
        self,
        secret_key: str,
        token_exp_minutes: int = 1440,
        algorithm: str = "HS256",
    ) -> None:
        if not secret_key:
            raise RuntimeError("SESSION_TOKEN_SECRET não configurado.")
        if secret_key == "change-me":
            logger.warning(
                "SESSION_TOKEN_SECRET está usando o valor padrão. Configure um segredo seguro em produção."
            )
        self._secret_key = secret_key
        self._token_exp_minutes = token_exp_minutes
        self._algorithm = algorithm

    def create_token(self, account: Account) -> IssuedToken:
        now = datetime.now(tz=timezone.utc)
        expire = now + timedelta(minutes=self._token_exp_minutes)
        token_id = uuid.uuid4().hex
        payload = {
            "sub": account.id,
            "email": account.email,
            "role": account.role.value,
            "jti": token_id,
            "iat": now,
            "exp": expire,
        }
        token = jwt.encode(payload, self._secret_key, algorithm=self._algorithm)
        return IssuedToken(token=token, token_id=token_id, expires_at=expire)

    def decode_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the verified payload, or None when the token is invalid or expired."""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        if not payload.get("sub") or not payload.get("jti"):
            return None
        return payload
