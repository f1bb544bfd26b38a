from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Union

from ...core.security import (
    BCRYPT_ROUNDS,
    SessionTokenService,
    generate_reset_token,
    hash_password,
    hash_token,
    verify_password,
)
from ...domain.errors import (
    AccountNotFound,
    AccountPendingApproval,
    DuplicateEmail,
    EmailNotFound,
    InstitutionalEmailRequired,
    InvalidCredentials,
    InvalidEmail,
    InvalidName,
    InvalidOrExpiredToken,
    InvalidPhone,
    InvalidRole,
    PhoneRequired,
    TooManyAttempts,
    WeakPassword,
)
from ...domain.models import Account, ApprovalStatus, PasswordResetToken, Role, Session
from ...domain.ports.notifications import PasswordResetNotifier
from ...domain.ports.persistence import PersistenceGateway
from ...domain.validators import (
    CITIZEN_NAME_MAX_LENGTH,
    DEFAULT_INSTITUTIONAL_DOMAINS,
    DEFAULT_MIN_PASSWORD_SCORE,
    NAME_MIN_LENGTH,
    STAFF_NAME_MAX_LENGTH,
    is_institutional_email,
    normalize_email,
    sanitize_text,
    score_password_strength,
    validate_email_syntax,
    validate_full_name,
    validate_phone_br,
)
from ...services.rate_limiter import LoginRateLimiter

logger = logging.getLogger(__name__)

SEED_APPROVER = "seed"
SAMPLE_ACCOUNTS = (
    ("admin@prefeitura.exemplo.gov.br", "Administrador Exemplo", Role.ADMIN, "(11) 98888-7777"),
    ("agente@policia.exemplo.gov.br", "Agente Exemplo", Role.AGENT, "(11) 97777-6666"),
    ("cidadao@exemplo.com.br", "Cidadão Exemplo", Role.CITIZEN, None),
)


@dataclass(slots=True)
class RegistrationData:
    email: str
    password: str
    full_name: str
    role: Union[Role, str]
    phone: Optional[str] = None


@dataclass(slots=True)
class IdentityPolicy:
    """Tunable knobs of the identity rules, usually filled from Settings."""

    password_min_score: int = DEFAULT_MIN_PASSWORD_SCORE
    password_reset_ttl: timedelta = timedelta(hours=1)
    institutional_domains: Sequence[str] = field(default_factory=lambda: list(DEFAULT_INSTITUTIONAL_DOMAINS))
    bcrypt_rounds: int = BCRYPT_ROUNDS


class IdentityService:
    """Registration, login, session resolution, password reset and account adjudication."""

    def __init__(
        self,
        persistence: PersistenceGateway,
        rate_limiter: LoginRateLimiter,
        token_service: SessionTokenService,
        notifier: Optional[PasswordResetNotifier] = None,
        policy: Optional[IdentityPolicy] = None,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._persistence = persistence
        self._rate_limiter = rate_limiter
        self._tokens = token_service
        self._notifier = notifier
        self._policy = policy or IdentityPolicy()
        self._now = now or (lambda: datetime.now(tz=timezone.utc))
        # Compared against when the e-mail is unknown so both failure paths cost one bcrypt check.
        self._dummy_hash = hash_password(uuid.uuid4().hex, rounds=self._policy.bcrypt_rounds)

    # Registration ----------------------------------------------------------
    def register(self, data: RegistrationData) -> Account:
        full_name = sanitize_text(data.full_name)
        email = normalize_email(sanitize_text(data.email))
        phone = sanitize_text(data.phone) if data.phone else None
        phone = phone or None

        if not validate_email_syntax(email):
            raise InvalidEmail()

        self._ensure_strong_password(data.password)

        if len(full_name) < NAME_MIN_LENGTH:
            raise InvalidName("Nome completo deve ter pelo menos 2 caracteres.")

        role = self._resolve_role(data.role)
        if role in (Role.ADMIN, Role.AGENT):
            self._check_staff_policy(role, email, full_name, phone)
        elif role is Role.CITIZEN:
            self._check_citizen_policy(full_name, phone)
        else:
            raise InvalidRole()

        if self._persistence.find_by_email(email):
            raise DuplicateEmail()

        status = ApprovalStatus.APPROVED if role is Role.CITIZEN else ApprovalStatus.PENDING
        now = self._now()
        account = Account(
            id=str(uuid.uuid4()),
            email=email,
            full_name=full_name,
            phone=phone,
            role=role,
            approval_status=status,
            created_at=now,
            updated_at=now,
        )
        created = self._persistence.create(account, self._hash(data.password))
        logger.info(
            "Registered %s account %s (%s).", created.role.value, created.email, created.approval_status.value
        )
        return created

    def _check_staff_policy(self, role: Role, email: str, full_name: str, phone: Optional[str]) -> None:
        label = "Administradores" if role is Role.ADMIN else "Agentes"
        if not is_institutional_email(email, self._policy.institutional_domains):
            raise InstitutionalEmailRequired(f"{label} devem usar email institucional.")
        if not validate_full_name(full_name, STAFF_NAME_MAX_LENGTH):
            raise InvalidName(
                f"Nome deve conter apenas letras e espaços (até {STAFF_NAME_MAX_LENGTH} caracteres)."
            )
        if not phone or not validate_phone_br(phone):
            raise PhoneRequired(f"Telefone brasileiro válido é obrigatório para {label.lower()}.")

    @staticmethod
    def _check_citizen_policy(full_name: str, phone: Optional[str]) -> None:
        if not validate_full_name(full_name, CITIZEN_NAME_MAX_LENGTH):
            raise InvalidName(
                f"Nome deve conter apenas letras e espaços (até {CITIZEN_NAME_MAX_LENGTH} caracteres)."
            )
        if phone and not validate_phone_br(phone):
            raise InvalidPhone()

    @staticmethod
    def _resolve_role(value: Union[Role, str]) -> Optional[Role]:
        try:
            role = value if isinstance(value, Role) else Role(value)
        except ValueError:
            return None
        # Masters are provisioned out-of-band only.
        return None if role is Role.MASTER else role

    # Authentication --------------------------------------------------------
    def login(self, email: str, password: str) -> Account:
        """
        Verify credentials and return the approved account.

        Raises:
            TooManyAttempts: The identifier is locked out; not counted as a failure
            InvalidCredentials: Unknown e-mail or wrong password; counted as a failure
            AccountPendingApproval: Correct password but the account is not approved
        """
        identifier = normalize_email(email)
        with self._rate_limiter.guard(identifier):
            attempt = self._rate_limiter.check_attempt(identifier)
            if not attempt.allowed:
                logger.warning("Login blocked for %s: account temporarily locked.", identifier)
                raise TooManyAttempts(attempt.lockout_remaining or timedelta(0))

            account = self._persistence.find_by_email(identifier)
            credential = self._persistence.get_credential(identifier) if account else None
            if credential is None:
                verify_password(password, self._dummy_hash)
                self._rate_limiter.record_failure(identifier)
                logger.warning("Failed login for %s.", identifier)
                raise InvalidCredentials()
            if not verify_password(password, credential):
                self._rate_limiter.record_failure(identifier)
                logger.warning("Failed login for %s.", identifier)
                raise InvalidCredentials()

            if not account.is_approved:
                raise AccountPendingApproval(account.approval_status.value)

            self._rate_limiter.clear_attempts(identifier)

        logger.info("Login succeeded for %s.", account.email)
        return account

    def open_session(self, email: str, password: str) -> Session:
        account = self.login(email, password)
        issued = self._tokens.create_token(account)
        return Session(account=account, access_token=issued.token, expires_at=issued.expires_at)

    def get_current_identity(self, token: Optional[str]) -> Optional[Account]:
        """Resolve the account behind a bearer token, or None when it no longer grants access."""
        if not token:
            return None
        payload = self._tokens.decode_token(token)
        if payload is None:
            return None
        if self._persistence.is_session_revoked(payload["jti"]):
            return None
        account = self._persistence.find_by_id(payload["sub"])
        if account is None or not account.is_approved:
            return None
        return account

    def logout(self, token: Optional[str]) -> None:
        if not token:
            return
        payload = self._tokens.decode_token(token)
        if payload is None:
            return
        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        self._persistence.revoke_session(payload["jti"], expires_at)
        logger.info("Session %s revoked.", payload["jti"])

    # Password reset --------------------------------------------------------
    def request_password_reset(self, email: str) -> None:
        identifier = normalize_email(email)
        account = self._persistence.find_by_email(identifier)
        if account is None:
            raise EmailNotFound()

        token = generate_reset_token()
        now = self._now()
        expires_at = now + self._policy.password_reset_ttl
        self._persistence.save_reset_token(
            PasswordResetToken(
                token_hash=hash_token(token),
                email=account.email,
                expires_at=expires_at,
                created_at=now,
            )
        )
        logger.info("Password reset requested for %s.", account.email)

        if self._notifier is not None and not self._notifier.send_password_reset(account.email, token, expires_at):
            logger.warning("Password reset link for %s could not be delivered.", account.email)

    def reset_password(self, token: str, new_password: str) -> None:
        digest = hash_token(token)
        now = self._now()

        record = self._persistence.get_reset_token(digest)
        if record is None:
            raise InvalidOrExpiredToken()
        if record.is_expired(now):
            self._persistence.delete_reset_token(digest)
            raise InvalidOrExpiredToken()

        self._ensure_strong_password(new_password)

        consumed = self._persistence.consume_reset_token(digest)
        if consumed is None:
            # Redeemed concurrently by another request.
            raise InvalidOrExpiredToken()

        self._persistence.update_credential(consumed.email, self._hash(new_password))
        logger.info("Password reset completed for %s.", consumed.email)

    # Adjudication ----------------------------------------------------------
    def update_approval_status(
        self,
        email: str,
        decision: Union[ApprovalStatus, str],
        approved_by: Optional[str],
    ) -> Account:
        try:
            status = decision if isinstance(decision, ApprovalStatus) else ApprovalStatus(decision)
        except ValueError as exc:
            raise ValueError(f"Decisão de aprovação inválida: {decision!r}") from exc
        if status is ApprovalStatus.PENDING:
            raise ValueError("Decisão de aprovação deve ser 'approved' ou 'rejected'.")

        account = self._persistence.update_approval_status(normalize_email(email), status, approved_by)
        logger.info("Account %s %s by %s.", account.email, status.value, approved_by)
        return account

    def get_account(self, email: str) -> Account:
        account = self._persistence.find_by_email(normalize_email(email))
        if account is None:
            raise AccountNotFound()
        return account

    def list_pending_accounts(self) -> List[Account]:
        return self._persistence.list_pending()

    def list_accounts(
        self,
        role: Optional[Role] = None,
        status: Optional[ApprovalStatus] = None,
    ) -> List[Account]:
        return self._persistence.list_accounts(role=role, status=status)

    # Bootstrap -------------------------------------------------------------
    def provision_master(self, email: str, password: str, full_name: str) -> Account:
        """Create a master account. Only reachable from trusted tooling, never from registration."""
        email_clean = normalize_email(sanitize_text(email))
        name_clean = sanitize_text(full_name)
        if not validate_email_syntax(email_clean):
            raise InvalidEmail()
        self._ensure_strong_password(password)
        if not validate_full_name(name_clean, CITIZEN_NAME_MAX_LENGTH):
            raise InvalidName()
        if self._persistence.find_by_email(email_clean):
            raise DuplicateEmail()

        now = self._now()
        account = Account(
            id=str(uuid.uuid4()),
            email=email_clean,
            full_name=name_clean,
            role=Role.MASTER,
            approval_status=ApprovalStatus.APPROVED,
            approved_by=SEED_APPROVER,
            approved_at=now,
            created_at=now,
            updated_at=now,
        )
        created = self._persistence.create(account, self._hash(password))
        logger.info("Provisioned master account %s.", created.email)
        return created

    def seed_default_accounts(
        self,
        master_email: Optional[str],
        master_password: Optional[str],
        master_name: str = "Master Admin",
        sample_password: Optional[str] = None,
    ) -> int:
        """
        Populate an empty repository with a master and, optionally, one sample per other role.

        Returns:
            Number of accounts inserted (0 when the repository already had data
            or no master credentials were configured)
        """
        if not master_email or not master_password:
            logger.info("No master credentials configured; skipping account seed.")
            return 0
        if not score_password_strength(master_password, self._policy.password_min_score).is_valid:
            logger.warning("Configured master password does not meet the password policy.")

        now = self._now()
        seeds = [
            (
                self._seed_account(normalize_email(master_email), master_name, Role.MASTER, None, now),
                self._hash(master_password),
            )
        ]
        if sample_password:
            sample_hash = self._hash(sample_password)
            for email, name, role, phone in SAMPLE_ACCOUNTS:
                seeds.append((self._seed_account(email, name, role, phone, now), sample_hash))

        inserted = self._persistence.seed_if_empty(seeds)
        if inserted:
            logger.info("Seeded %s default accounts.", inserted)
        return inserted

    # Helpers ---------------------------------------------------------------
    @staticmethod
    def _seed_account(email: str, full_name: str, role: Role, phone: Optional[str], now: datetime) -> Account:
        return Account(
            id=str(uuid.uuid4()),
            email=email,
            full_name=full_name,
            phone=phone,
            role=role,
            approval_status=ApprovalStatus.APPROVED,
            approved_by=SEED_APPROVER,
            approved_at=now,
            created_at=now,
            updated_at=now,
        )

    def _ensure_strong_password(self, password: str) -> None:
        strength = score_password_strength(password, self._policy.password_min_score)
        if not strength.is_valid:
            raise WeakPassword(strength.feedback)

    def _hash(self, password: str) -> str:
        return hash_password(password, rounds=self._policy.bcrypt_rounds)
