from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class PasswordResetToken:
    """Stored half of a reset link. Only the SHA-256 digest of the token is kept."""

    token_hash: str
    email: str
    expires_at: datetime
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at
