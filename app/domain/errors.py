"""Failure taxonomy of the identity core.

Every business-rule violation is raised as a subclass of ``IdentityError``.
Messages are user-facing (pt-BR); ``code`` is the stable machine-readable kind.
"""

from __future__ import annotations

from datetime import timedelta
from typing import List, Optional, Sequence

from .validators import format_lockout_duration


class IdentityError(Exception):
    code = "identity_error"
    default_message = "Não foi possível concluir a operação."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# Input validation -----------------------------------------------------------
class RegistrationError(IdentityError):
    """Input rejected during registration or password change. Fix the input and retry."""

    code = "invalid_input"


class InvalidEmail(RegistrationError):
    code = "invalid_email"
    default_message = "Email inválido."


class WeakPassword(RegistrationError):
    code = "weak_password"
    default_message = "Senha inválida."

    def __init__(self, errors: Sequence[str] = ()) -> None:
        self.errors: List[str] = list(errors)
        message = self.default_message
        if self.errors:
            message = f"Senha inválida: {'; '.join(self.errors)}."
        super().__init__(message)


class InvalidName(RegistrationError):
    code = "invalid_name"
    default_message = "Nome deve conter apenas letras e espaços."


class InvalidPhone(RegistrationError):
    code = "invalid_phone"
    default_message = "Formato de telefone inválido."


class InstitutionalEmailRequired(RegistrationError):
    code = "institutional_email_required"
    default_message = "É necessário usar um email institucional."


class PhoneRequired(RegistrationError):
    code = "phone_required"
    default_message = "Telefone brasileiro válido é obrigatório."


class InvalidRole(RegistrationError):
    code = "invalid_role"
    default_message = "Tipo de usuário inválido."


# Conflict -------------------------------------------------------------------
class DuplicateEmail(IdentityError):
    code = "duplicate_email"
    default_message = "Este email já está cadastrado no sistema."


# Authentication -------------------------------------------------------------
class InvalidCredentials(IdentityError):
    code = "invalid_credentials"
    default_message = "Email ou senha incorretos."


class TooManyAttempts(IdentityError):
    code = "too_many_attempts"

    def __init__(self, lockout_remaining: timedelta) -> None:
        self.lockout_remaining = lockout_remaining
        super().__init__(
            "Muitas tentativas de login. "
            f"Tente novamente em {format_lockout_duration(lockout_remaining)}."
        )


class AccountPendingApproval(IdentityError):
    code = "account_pending_approval"
    default_message = "Sua conta ainda não foi aprovada por um administrador."

    def __init__(self, status: str = "pending") -> None:
        self.status = status
        message = None
        if status == "rejected":
            message = "Sua conta foi recusada por um administrador."
        super().__init__(message)


# Password reset -------------------------------------------------------------
class EmailNotFound(IdentityError):
    code = "email_not_found"
    default_message = "Nenhuma conta encontrada para este email."


class InvalidOrExpiredToken(IdentityError):
    code = "invalid_or_expired_token"
    default_message = "Link de redefinição inválido ou expirado. Solicite um novo link."


# Repository -----------------------------------------------------------------
class AccountNotFound(IdentityError):
    code = "account_not_found"
    default_message = "Usuário não encontrado."


class RepositoryUnavailable(IdentityError):
    code = "repository_unavailable"
    default_message = "Serviço temporariamente indisponível. Tente novamente em instantes."
