from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ....application.services.identity_service import IdentityService
from ....core.dependencies import get_identity_service
from ....domain.models import Account, ApprovalStatus, Role
from ....domain.permissions import Capability, has_capability
from ...api.dependencies import require_capability
from ...api.schemas.admin import ApprovalDecisionRequest
from ...api.schemas.auth import AccountResponse

router = APIRouter(prefix="/api/admin", tags=["Account Administration"])


@router.get("/accounts/pending", response_model=List[AccountResponse])
def list_pending_accounts(
    _: Account = Depends(require_capability(Capability.USER_APPROVE)),
    identity: IdentityService = Depends(get_identity_service),
) -> List[AccountResponse]:
    return [AccountResponse.from_account(account) for account in identity.list_pending_accounts()]


@router.get("/accounts", response_model=List[AccountResponse])
def list_accounts(
    role: Optional[Role] = None,
    approval_status: Optional[ApprovalStatus] = None,
    _: Account = Depends(require_capability(Capability.USER_READ)),
    identity: IdentityService = Depends(get_identity_service),
) -> List[AccountResponse]:
    accounts = identity.list_accounts(role=role, status=approval_status)
    return [AccountResponse.from_account(account) for account in accounts]


@router.post("/accounts/{email}/approval", response_model=AccountResponse)
def decide_approval(
    email: str,
    payload: ApprovalDecisionRequest,
    current: Account = Depends(require_capability(Capability.USER_APPROVE)),
    identity: IdentityService = Depends(get_identity_service),
) -> AccountResponse:
    """Approve or reject a pending account. Deciding on administrators is reserved to masters."""
    target = identity.get_account(email)
    if target.role in (Role.ADMIN, Role.MASTER) and not has_capability(current.role, Capability.ADMIN_MANAGE):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissão insuficiente.")
    account = identity.update_approval_status(target.email, payload.decision, approved_by=current.id)
    return AccountResponse.from_account(account)
