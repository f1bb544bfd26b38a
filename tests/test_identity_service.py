from datetime import timedelta

import pytest

from app.application.services.identity_service import (
    IdentityPolicy,
    IdentityService,
    RegistrationData,
    SAMPLE_ACCOUNTS,
)
from app.domain.errors import (
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
    RepositoryUnavailable,
    TooManyAttempts,
    WeakPassword,
)
from app.domain.models import ApprovalStatus, Role
from app.services.rate_limiter import LoginRateLimiter

from .conftest import TEST_BCRYPT_ROUNDS


def citizen_data(**overrides) -> RegistrationData:
    values = dict(email="joao@email.com", password="MinhaSenh@123", full_name="João Silva", role="citizen")
    values.update(overrides)
    return RegistrationData(**values)


def staff_data(**overrides) -> RegistrationData:
    values = dict(
        email="admin@prefeitura.sp.gov.br",
        password="AdminSenh@123",
        full_name="Admin User",
        role="admin",
        phone="(11) 99999-9999",
    )
    values.update(overrides)
    return RegistrationData(**values)


class TestRegistration:
    def test_citizen_is_approved_and_can_login(self, identity):
        account = identity.register(citizen_data())

        assert account.is_approved
        assert account.role is Role.CITIZEN
        assert identity.login("joao@email.com", "MinhaSenh@123").id == account.id

    def test_staff_requires_institutional_email(self, identity):
        with pytest.raises(InstitutionalEmailRequired):
            identity.register(staff_data(email="admin@gmail.com"))

    def test_staff_starts_pending_until_approved(self, identity, master):
        identity.register(staff_data())

        with pytest.raises(AccountPendingApproval):
            identity.login("admin@prefeitura.sp.gov.br", "AdminSenh@123")

        identity.update_approval_status("admin@prefeitura.sp.gov.br", "approved", master.id)
        account = identity.login("admin@prefeitura.sp.gov.br", "AdminSenh@123")
        assert account.approved_by == master.id

    def test_agent_requires_phone(self, identity):
        with pytest.raises(PhoneRequired):
            identity.register(staff_data(email="agente@policia.sp.gov.br", role="agent", phone=None))

    def test_staff_name_limit(self, identity):
        with pytest.raises(InvalidName):
            identity.register(staff_data(full_name="A" * 51))

    def test_citizen_phone_optional_but_validated(self, identity):
        assert identity.register(citizen_data(phone="(11) 98888-7777")).phone == "(11) 98888-7777"
        with pytest.raises(InvalidPhone):
            identity.register(citizen_data(email="outro@email.com", phone="123"))

    def test_email_is_normalised(self, identity):
        account = identity.register(citizen_data(email="  Joao@Email.COM "))
        assert account.email == "joao@email.com"
        with pytest.raises(DuplicateEmail):
            identity.register(citizen_data(email="JOAO@email.com"))

    def test_invalid_email(self, identity):
        with pytest.raises(InvalidEmail):
            identity.register(citizen_data(email="joao..silva@email.com"))

    def test_weak_password_reports_feedback(self, identity):
        with pytest.raises(WeakPassword) as excinfo:
            identity.register(citizen_data(password="abc"))
        assert excinfo.value.errors

    def test_short_name(self, identity):
        with pytest.raises(InvalidName):
            identity.register(citizen_data(full_name="J"))

    def test_name_with_digits(self, identity):
        with pytest.raises(InvalidName):
            identity.register(citizen_data(full_name="João 2"))

    def test_name_markup_is_sanitised(self, identity):
        account = identity.register(citizen_data(full_name="  <João Silva>  "))
        assert account.full_name == "João Silva"

    @pytest.mark.parametrize("role", ["master", "visitor", ""])
    def test_unregistrable_roles(self, identity, role):
        with pytest.raises(InvalidRole):
            identity.register(citizen_data(role=role))

    def test_rejected_account_cannot_re_register(self, identity, master, pending_admin):
        identity.update_approval_status(pending_admin.email, ApprovalStatus.REJECTED, master.id)
        with pytest.raises(DuplicateEmail):
            identity.register(staff_data())

    def test_credential_never_on_account(self, identity):
        account = identity.register(citizen_data())
        assert "MinhaSenh@123" not in repr(account)
        assert not hasattr(account, "password_hash")


class TestLogin:
    def test_lockout_after_five_failures(self, identity):
        identity.register(citizen_data(email="test@email.com"))
        for _ in range(5):
            with pytest.raises(InvalidCredentials):
                identity.login("test@email.com", "Errada@123")

        with pytest.raises(TooManyAttempts) as excinfo:
            identity.login("test@email.com", "MinhaSenh@123")
        assert "15 minutos" in excinfo.value.message

    def test_unknown_email_counts_against_budget(self, identity, rate_limiter):
        with pytest.raises(InvalidCredentials) as unknown:
            identity.login("ghost@email.com", "Qualquer@123")
        assert rate_limiter.check_attempt("ghost@email.com").attempts_left == 4

        identity.register(citizen_data())
        with pytest.raises(InvalidCredentials) as wrong:
            identity.login("joao@email.com", "Errada@123")
        assert unknown.value.message == wrong.value.message

    def test_lockout_expires(self, identity, monotonic_clock):
        identity.register(citizen_data())
        for _ in range(5):
            with pytest.raises(InvalidCredentials):
                identity.login("joao@email.com", "Errada@123")

        monotonic_clock.advance(timedelta(minutes=15))
        assert identity.login("joao@email.com", "MinhaSenh@123").email == "joao@email.com"

    def test_success_clears_failures(self, identity, rate_limiter):
        identity.register(citizen_data())
        for _ in range(3):
            with pytest.raises(InvalidCredentials):
                identity.login("joao@email.com", "Errada@123")

        identity.login("joao@email.com", "MinhaSenh@123")
        assert rate_limiter.check_attempt("joao@email.com").attempts_left == 5

    def test_pending_login_does_not_touch_counter(self, identity, rate_limiter, pending_admin):
        with pytest.raises(AccountPendingApproval):
            identity.login(pending_admin.email, "AdminSenh@123")
        assert rate_limiter.check_attempt(pending_admin.email).attempts_left == 5

    def test_rejected_account_cannot_login(self, identity, master, pending_admin):
        identity.update_approval_status(pending_admin.email, "rejected", master.id)
        with pytest.raises(AccountPendingApproval) as excinfo:
            identity.login(pending_admin.email, "AdminSenh@123")
        assert excinfo.value.status == "rejected"

    def test_login_is_case_insensitive(self, identity):
        identity.register(citizen_data())
        assert identity.login("JOAO@Email.com", "MinhaSenh@123").email == "joao@email.com"


class TestSessions:
    def test_open_session_resolves_identity(self, identity, citizen):
        session = identity.open_session("joao@email.com", "MinhaSenh@123")

        assert session.token_type == "bearer"
        assert identity.get_current_identity(session.access_token).id == citizen.id

    def test_logout_revokes_token(self, identity, citizen):
        session = identity.open_session("joao@email.com", "MinhaSenh@123")
        identity.logout(session.access_token)
        assert identity.get_current_identity(session.access_token) is None

    def test_garbage_token(self, identity):
        assert identity.get_current_identity("not-a-token") is None
        assert identity.get_current_identity(None) is None
        identity.logout("not-a-token")

    def test_rejection_ends_existing_session(self, identity, master, pending_admin):
        identity.update_approval_status(pending_admin.email, "approved", master.id)
        session = identity.open_session(pending_admin.email, "AdminSenh@123")

        identity.update_approval_status(pending_admin.email, "rejected", master.id)
        assert identity.get_current_identity(session.access_token) is None


class TestPasswordReset:
    def test_round_trip(self, identity, citizen, notifier):
        identity.request_password_reset("joao@email.com")
        token = notifier.last_token

        identity.reset_password(token, "NovaChave#2024")

        assert identity.login("joao@email.com", "NovaChave#2024").id == citizen.id
        with pytest.raises(InvalidCredentials):
            identity.login("joao@email.com", "MinhaSenh@123")

    def test_token_is_single_use(self, identity, citizen, notifier):
        identity.request_password_reset("joao@email.com")
        token = notifier.last_token
        identity.reset_password(token, "NovaChave#2024")

        with pytest.raises(InvalidOrExpiredToken):
            identity.reset_password(token, "OutraChave#2024")

    def test_expired_token(self, identity, citizen, notifier, wall_clock):
        identity.request_password_reset("joao@email.com")
        wall_clock.advance(timedelta(hours=1, seconds=1))

        with pytest.raises(InvalidOrExpiredToken):
            identity.reset_password(notifier.last_token, "NovaChave#2024")

    def test_weak_password_keeps_token_usable(self, identity, citizen, notifier):
        identity.request_password_reset("joao@email.com")
        token = notifier.last_token

        with pytest.raises(WeakPassword):
            identity.reset_password(token, "fraca")
        identity.reset_password(token, "NovaChave#2024")

    def test_unknown_token(self, identity):
        with pytest.raises(InvalidOrExpiredToken):
            identity.reset_password("does-not-exist", "NovaChave#2024")

    def test_unknown_email(self, identity):
        with pytest.raises(EmailNotFound):
            identity.request_password_reset("ghost@email.com")

    def test_only_digest_is_stored(self, identity, citizen, notifier, persistence):
        identity.request_password_reset("joao@email.com")
        assert persistence.get_reset_token(notifier.last_token) is None

    def test_reset_keeps_identity(self, identity, citizen, notifier, persistence):
        identity.request_password_reset("joao@email.com")
        identity.reset_password(notifier.last_token, "NovaChave#2024")

        account = persistence.find_by_email("joao@email.com")
        assert account.id == citizen.id
        assert account.role is citizen.role
        assert account.approval_status is citizen.approval_status


class TestAdjudication:
    def test_pending_is_not_a_decision(self, identity, pending_admin):
        with pytest.raises(ValueError):
            identity.update_approval_status(pending_admin.email, "pending", "x")
        with pytest.raises(ValueError):
            identity.update_approval_status(pending_admin.email, "maybe", "x")

    def test_unknown_account(self, identity):
        with pytest.raises(AccountNotFound):
            identity.update_approval_status("ghost@email.com", "approved", "x")
        with pytest.raises(AccountNotFound):
            identity.get_account("ghost@email.com")

    def test_pending_listing(self, identity, citizen, pending_admin):
        assert [a.email for a in identity.list_pending_accounts()] == [pending_admin.email]
        assert [a.email for a in identity.list_accounts(role=Role.CITIZEN)] == [citizen.email]


class TestBootstrap:
    def test_master_provisioning(self, identity, master):
        assert master.role is Role.MASTER
        assert master.is_approved
        assert identity.login(master.email, "M@sterKey2024").id == master.id

    def test_seed_defaults_once(self, identity, persistence):
        inserted = identity.seed_default_accounts(
            "master@sentinela.gov.br", "M@sterKey2024", "Master Admin", sample_password="Exempl0#Forte"
        )
        assert inserted == 1 + len(SAMPLE_ACCOUNTS)
        assert identity.seed_default_accounts("outro@sentinela.gov.br", "M@sterKey2024") == 0
        assert identity.login("cidadao@exemplo.com.br", "Exempl0#Forte").role is Role.CITIZEN

    def test_seed_skipped_without_master_credentials(self, identity, persistence):
        assert identity.seed_default_accounts(None, None) == 0
        assert persistence.count_accounts() == 0


class BrokenPersistence:
    """Every call fails the way a lost database connection does."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise RepositoryUnavailable()

        return fail


def test_repository_failure_propagates(token_service):
    service = IdentityService(
        persistence=BrokenPersistence(),
        rate_limiter=LoginRateLimiter(),
        token_service=token_service,
        policy=IdentityPolicy(bcrypt_rounds=TEST_BCRYPT_ROUNDS),
    )
    with pytest.raises(RepositoryUnavailable):
        service.login("joao@email.com", "MinhaSenh@123")
    with pytest.raises(RepositoryUnavailable):
        service.register(citizen_data())
