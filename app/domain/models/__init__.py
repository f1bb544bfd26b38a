"""Domain models for the Sentinela identity core."""

from .account import Account, ApprovalStatus, Role
from .password_reset import PasswordResetToken
from .session import Session

__all__ = [
    "Account",
    "ApprovalStatus",
    "PasswordResetToken",
    "Role",
    "Session",
]
