from __future__ import annotations

from datetime import datetime
from typing import Protocol


class PasswordResetNotifier(Protocol):
    """Delivers reset links to account owners. Fire-and-forget from the caller's side."""

    def send_password_reset(self, to_email: str, reset_token: str, expires_at: datetime) -> bool:
        ...
