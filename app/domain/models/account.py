"""Account domain model for portal identities."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class Role(str, Enum):
    CITIZEN = "citizen"
    AGENT = "agent"
    ADMIN = "admin"
    MASTER = "master"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(slots=True)
class Account:
    """
    Durable identity record.

    The credential hash is not part of this entity; repositories hand it out
    only through ``get_credential``.

    Attributes:
        id: Opaque identifier assigned at creation
        email: Normalised e-mail address (unique)
        full_name: Sanitised display name
        role: Role in the portal hierarchy, immutable
        approval_status: Single source of truth for the approval lifecycle
        created_at: Account creation timestamp
        updated_at: Last mutation timestamp
        phone: Optional sanitised phone number
        approved_by: Identifier of whoever adjudicated the account
        approved_at: When the account left ``pending``
    """

    id: str
    email: str
    full_name: str
    role: Role
    approval_status: ApprovalStatus
    created_at: datetime
    updated_at: datetime
    phone: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None

    @property
    def is_approved(self) -> bool:
        return self.approval_status is ApprovalStatus.APPROVED

    def __repr__(self) -> str:
        return (
            f"<Account id={self.id} email={self.email} role={self.role.value} "
            f"status={self.approval_status.value}>"
        )
