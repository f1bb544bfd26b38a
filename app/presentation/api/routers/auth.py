"""API router for registration, login, sessions and password reset."""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from ....application.services.identity_service import IdentityService, RegistrationData
from ....core.dependencies import get_identity_service
from ....domain.models import Account
from ...api.dependencies import get_bearer_token, require_account
from ...api.schemas.auth import (
    AccountResponse,
    LoginRequest,
    LoginResponse,
    PasswordResetConfirmRequest,
    PasswordResetRequest,
    ProfileResponse,
    RegisterRequest,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    identity: IdentityService = Depends(get_identity_service),
) -> AccountResponse:
    """Self-registration. Citizens are approved immediately, staff wait for an administrator."""
    account = identity.register(
        RegistrationData(
            email=payload.email,
            password=payload.password,
            full_name=payload.full_name,
            role=payload.role,
            phone=payload.phone,
        )
    )
    return AccountResponse.from_account(account)


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    identity: IdentityService = Depends(get_identity_service),
) -> LoginResponse:
    session = identity.open_session(payload.email, payload.password)
    return LoginResponse(
        access_token=session.access_token,
        token_type=session.token_type,
        expires_at=session.expires_at,
        account=AccountResponse.from_account(session.account),
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    token: Optional[str] = Depends(get_bearer_token),
    identity: IdentityService = Depends(get_identity_service),
) -> Response:
    identity.logout(token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=ProfileResponse)
def me(current: Account = Depends(require_account)) -> ProfileResponse:
    return ProfileResponse.from_account(current)


@router.post("/password-reset/request", status_code=status.HTTP_202_ACCEPTED)
def request_password_reset(
    payload: PasswordResetRequest,
    identity: IdentityService = Depends(get_identity_service),
) -> dict:
    identity.request_password_reset(payload.email)
    return {"message": "Enviamos um link de redefinição para o seu email."}


@router.post("/password-reset/confirm", status_code=status.HTTP_204_NO_CONTENT)
def confirm_password_reset(
    payload: PasswordResetConfirmRequest,
    identity: IdentityService = Depends(get_identity_service),
) -> Response:
    identity.reset_password(payload.token, payload.new_password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
