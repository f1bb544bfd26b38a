import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, List, Optional, Tuple, Union

from ...domain.errors import AccountNotFound, DuplicateEmail, RepositoryUnavailable
from ...domain.models import Account, ApprovalStatus, PasswordResetToken, Role
from ...domain.ports.persistence import PersistenceGateway

logger = logging.getLogger(__name__)


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the persistence gateway."""

    def __init__(
        self,
        path: Union[Path, str],
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if str(path) != ":memory:":
            path = Path(path)
            path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._clock = now or (lambda: datetime.now(timezone.utc))
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    password_hash TEXT NOT NULL,
                    full_name TEXT NOT NULL,
                    phone TEXT,
                    role TEXT NOT NULL,
                    approval_status TEXT NOT NULL,
                    approved_by TEXT,
                    approved_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_accounts_approval_status
                    ON accounts(approval_status);

                CREATE TABLE IF NOT EXISTS password_reset_tokens (
                    token_hash TEXT PRIMARY KEY,
                    email TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_password_reset_tokens_email
                    ON password_reset_tokens(email);

                CREATE TABLE IF NOT EXISTS revoked_sessions (
                    token_id TEXT PRIMARY KEY,
                    expires_at TEXT NOT NULL
                );
                """
            )

    def close(self) -> None:
        self._conn.close()

    @contextmanager
    def _backend(self, operation: str) -> Iterator[None]:
        """Translate driver failures into RepositoryUnavailable without leaking their text."""
        try:
            yield
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as exc:
            logger.exception("SQLite failure during %s", operation)
            raise RepositoryUnavailable() from exc

    # AccountRepository API --------------------------------------------------
    def find_by_email(self, email: str) -> Optional[Account]:
        with self._backend("find_by_email"), self._lock:
            cur = self._conn.execute("SELECT * FROM accounts WHERE email = ?", (email,))
            row = cur.fetchone()
        return self._row_to_account(row) if row else None

    def find_by_id(self, account_id: str) -> Optional[Account]:
        with self._backend("find_by_id"), self._lock:
            cur = self._conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,))
            row = cur.fetchone()
        return self._row_to_account(row) if row else None

    def create(self, account: Account, credential: str) -> Account:
        try:
            with self._backend("create"), self._lock, self._conn:
                self._insert_account(account, credential)
                cur = self._conn.execute("SELECT * FROM accounts WHERE id = ?", (account.id,))
                row = cur.fetchone()
        except sqlite3.IntegrityError as exc:
            raise DuplicateEmail() from exc
        if not row:
            raise RuntimeError("Failed to persist account.")
        return self._row_to_account(row)

    def get_credential(self, email: str) -> Optional[str]:
        with self._backend("get_credential"), self._lock:
            cur = self._conn.execute("SELECT password_hash FROM accounts WHERE email = ?", (email,))
            row = cur.fetchone()
        return row["password_hash"] if row else None

    def update_approval_status(
        self,
        email: str,
        status: ApprovalStatus,
        approved_by: Optional[str],
    ) -> Account:
        now = self._now()
        with self._backend("update_approval_status"), self._lock, self._conn:
            self._conn.execute(
                """
                UPDATE accounts
                SET approval_status = ?,
                    approved_by = CASE WHEN approval_status = ? THEN ? ELSE approved_by END,
                    approved_at = CASE WHEN approval_status = ? THEN ? ELSE approved_at END,
                    updated_at = ?
                WHERE email = ?
                """,
                (
                    status.value,
                    ApprovalStatus.PENDING.value,
                    approved_by,
                    ApprovalStatus.PENDING.value,
                    now,
                    now,
                    email,
                ),
            )
            cur = self._conn.execute("SELECT * FROM accounts WHERE email = ?", (email,))
            row = cur.fetchone()
        if not row:
            raise AccountNotFound()
        return self._row_to_account(row)

    def update_credential(self, email: str, credential: str) -> None:
        with self._backend("update_credential"), self._lock, self._conn:
            cur = self._conn.execute(
                "UPDATE accounts SET password_hash = ?, updated_at = ? WHERE email = ?",
                (credential, self._now(), email),
            )
            updated = cur.rowcount
        if not updated:
            raise AccountNotFound()

    def list_pending(self) -> List[Account]:
        return self.list_accounts(status=ApprovalStatus.PENDING)

    def list_accounts(
        self,
        role: Optional[Role] = None,
        status: Optional[ApprovalStatus] = None,
    ) -> List[Account]:
        query = "SELECT * FROM accounts"
        clauses: List[str] = []
        params: List[Any] = []
        if role is not None:
            clauses.append("role = ?")
            params.append(role.value)
        if status is not None:
            clauses.append("approval_status = ?")
            params.append(status.value)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY created_at ASC, email ASC"
        with self._backend("list_accounts"), self._lock:
            cur = self._conn.execute(query, params)
            rows = cur.fetchall()
        return [self._row_to_account(row) for row in rows]

    def count_accounts(self) -> int:
        with self._backend("count_accounts"), self._lock:
            cur = self._conn.execute("SELECT COUNT(*) AS total FROM accounts")
            row = cur.fetchone()
        return int(row["total"])

    def seed_if_empty(self, accounts: Iterable[Tuple[Account, str]]) -> int:
        seeds = list(accounts)
        with self._backend("seed_if_empty"), self._lock, self._conn:
            cur = self._conn.execute("SELECT COUNT(*) AS total FROM accounts")
            if cur.fetchone()["total"]:
                return 0
            for account, credential in seeds:
                self._insert_account(account, credential)
        return len(seeds)

    # PasswordResetTokenRepository API --------------------------------------
    def save_reset_token(self, token: PasswordResetToken) -> None:
        with self._backend("save_reset_token"), self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO password_reset_tokens (token_hash, email, expires_at, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    token.token_hash,
                    token.email,
                    self._format_datetime(token.expires_at),
                    self._format_datetime(token.created_at),
                ),
            )

    def get_reset_token(self, token_hash: str) -> Optional[PasswordResetToken]:
        with self._backend("get_reset_token"), self._lock:
            cur = self._conn.execute(
                "SELECT * FROM password_reset_tokens WHERE token_hash = ?", (token_hash,)
            )
            row = cur.fetchone()
        return self._row_to_reset_token(row) if row else None

    def consume_reset_token(self, token_hash: str) -> Optional[PasswordResetToken]:
        with self._backend("consume_reset_token"), self._lock, self._conn:
            cur = self._conn.execute(
                "SELECT * FROM password_reset_tokens WHERE token_hash = ?", (token_hash,)
            )
            row = cur.fetchone()
            if row:
                self._conn.execute(
                    "DELETE FROM password_reset_tokens WHERE token_hash = ?", (token_hash,)
                )
        return self._row_to_reset_token(row) if row else None

    def delete_reset_token(self, token_hash: str) -> None:
        with self._backend("delete_reset_token"), self._lock, self._conn:
            self._conn.execute(
                "DELETE FROM password_reset_tokens WHERE token_hash = ?", (token_hash,)
            )

    def purge_expired_reset_tokens(self, now: datetime) -> int:
        with self._backend("purge_expired_reset_tokens"), self._lock, self._conn:
            cur = self._conn.execute(
                "DELETE FROM password_reset_tokens WHERE expires_at < ?",
                (self._format_datetime(now),),
            )
            return cur.rowcount

    # SessionRevocationRepository API ---------------------------------------
    def revoke_session(self, token_id: str, expires_at: datetime) -> None:
        with self._backend("revoke_session"), self._lock, self._conn:
            self._conn.execute(
                "INSERT OR IGNORE INTO revoked_sessions (token_id, expires_at) VALUES (?, ?)",
                (token_id, self._format_datetime(expires_at)),
            )

    def is_session_revoked(self, token_id: str) -> bool:
        with self._backend("is_session_revoked"), self._lock:
            cur = self._conn.execute(
                "SELECT 1 FROM revoked_sessions WHERE token_id = ?", (token_id,)
            )
            row = cur.fetchone()
        return row is not None

    def purge_expired_revocations(self, now: datetime) -> int:
        with self._backend("purge_expired_revocations"), self._lock, self._conn:
            cur = self._conn.execute(
                "DELETE FROM revoked_sessions WHERE expires_at < ?",
                (self._format_datetime(now),),
            )
            return cur.rowcount

    # Helpers ----------------------------------------------------------------
    def _insert_account(self, account: Account, credential: str) -> None:
        self._conn.execute(
            """
            INSERT INTO accounts (
                id, email, password_hash, full_name, phone, role, approval_status,
                approved_by, approved_at, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                account.id,
                account.email,
                credential,
                account.full_name,
                account.phone,
                account.role.value,
                account.approval_status.value,
                account.approved_by,
                self._format_datetime(account.approved_at) if account.approved_at else None,
                self._format_datetime(account.created_at),
                self._format_datetime(account.updated_at),
            ),
        )

    def _now(self) -> str:
        return self._format_datetime(self._clock())

    @staticmethod
    def _format_datetime(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

    @staticmethod
    def _parse_datetime(value: str) -> datetime:
        try:
            result = datetime.fromisoformat(value)
        except ValueError:
            # Fallback for legacy formats without 'T'
            result = datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
        if result.tzinfo is None:
            return result.replace(tzinfo=timezone.utc)
        return result.astimezone(timezone.utc)

    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            email=row["email"],
            full_name=row["full_name"],
            phone=row["phone"],
            role=Role(row["role"]),
            approval_status=ApprovalStatus(row["approval_status"]),
            approved_by=row["approved_by"],
            approved_at=self._parse_datetime(row["approved_at"]) if row["approved_at"] else None,
            created_at=self._parse_datetime(row["created_at"]),
            updated_at=self._parse_datetime(row["updated_at"]),
        )

    def _row_to_reset_token(self, row: sqlite3.Row) -> PasswordResetToken:
        return PasswordResetToken(
            token_hash=row["token_hash"],
            email=row["email"],
            expires_at=self._parse_datetime(row["expires_at"]),
            created_at=self._parse_datetime(row["created_at"]),
        )
