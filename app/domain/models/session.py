from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .account import Account


@dataclass(slots=True)
class Session:
    """Authenticated identity plus the bearer token that carries it between requests."""

    account: Account
    access_token: str
    expires_at: datetime
    token_type: str = "bearer"
