from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Tuple

from ..models import Account, ApprovalStatus, PasswordResetToken, Role


class AccountRepository(Protocol):
    """
    Abstract storage for portal accounts.

    E-mail arguments are expected in normalised form. Implementations raise
    ``DuplicateEmail`` / ``AccountNotFound`` for contract violations and
    ``RepositoryUnavailable`` for backend failures.
    """

    def find_by_email(self, email: str) -> Optional[Account]:
        ...

    def find_by_id(self, account_id: str) -> Optional[Account]:
        ...

    def create(self, account: Account, credential: str) -> Account:
        ...

    def get_credential(self, email: str) -> Optional[str]:
        ...

    def update_approval_status(
        self,
        email: str,
        status: ApprovalStatus,
        approved_by: Optional[str],
    ) -> Account:
        ...

    def update_credential(self, email: str, credential: str) -> None:
        ...

    def list_pending(self) -> List[Account]:
        ...

    def list_accounts(
        self,
        role: Optional[Role] = None,
        status: Optional[ApprovalStatus] = None,
    ) -> List[Account]:
        ...

    def count_accounts(self) -> int:
        ...

    def seed_if_empty(self, accounts: Iterable[Tuple[Account, str]]) -> int:
        ...


class PasswordResetTokenRepository(Protocol):
    """Single-use reset tokens, keyed by the SHA-256 digest of the token."""

    def save_reset_token(self, token: PasswordResetToken) -> None:
        ...

    def get_reset_token(self, token_hash: str) -> Optional[PasswordResetToken]:
        ...

    def consume_reset_token(self, token_hash: str) -> Optional[PasswordResetToken]:
        ...

    def delete_reset_token(self, token_hash: str) -> None:
        ...

    def purge_expired_reset_tokens(self, now: datetime) -> int:
        ...


class SessionRevocationRepository(Protocol):
    """Denylist of session token ids revoked before their natural expiry."""

    def revoke_session(self, token_id: str, expires_at: datetime) -> None:
        ...

    def is_session_revoked(self, token_id: str) -> bool:
        ...

    def purge_expired_revocations(self, now: datetime) -> int:
        ...


class PersistenceGateway(
    AccountRepository,
    PasswordResetTokenRepository,
    SessionRevocationRepository,
    Protocol,
):
    """Composite gateway combining every persistence concern used by the app."""

    pass
