"""Pydantic schemas for authentication endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ....domain.models import Account
from ....domain.permissions import capabilities_for


class RegisterRequest(BaseModel):
    """Request schema for self-registration."""

    email: str
    password: str
    full_name: str
    phone: Optional[str] = None
    role: str = "citizen"


class LoginRequest(BaseModel):
    email: str
    password: str


class PasswordResetRequest(BaseModel):
    email: str


class PasswordResetConfirmRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str


class AccountResponse(BaseModel):
    """Public view of an account. Never carries the credential."""

    id: str
    email: str
    full_name: str
    phone: Optional[str] = None
    role: str
    approval_status: str
    is_approved: bool
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            full_name=account.full_name,
            phone=account.phone,
            role=account.role.value,
            approval_status=account.approval_status.value,
            is_approved=account.is_approved,
            approved_by=account.approved_by,
            approved_at=account.approved_at,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    account: AccountResponse


class ProfileResponse(BaseModel):
    """Current identity plus everything its role allows, for UI guards."""

    account: AccountResponse
    capabilities: List[str]

    @classmethod
    def from_account(cls, account: Account) -> "ProfileResponse":
        return cls(
            account=AccountResponse.from_account(account),
            capabilities=sorted(capability.value for capability in capabilities_for(account.role)),
        )
