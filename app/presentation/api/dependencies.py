from typing import Callable, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ...application.services.identity_service import IdentityService
from ...core.dependencies import get_identity_service
from ...domain.models import Account, Role
from ...domain.permissions import Capability, has_all_capabilities, role_at_least

_bearer_scheme = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[str]:
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials


def require_account(
    token: Optional[str] = Depends(get_bearer_token),
    identity: IdentityService = Depends(get_identity_service),
) -> Account:
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token ausente.")
    account = identity.get_current_identity(token)
    if account is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sessão inválida ou expirada.")
    return account


def require_capability(*capabilities: Capability) -> Callable[..., Account]:
    """Build a dependency that admits only accounts whose role grants every capability given."""

    def dependency(account: Account = Depends(require_account)) -> Account:
        if not has_all_capabilities(account.role, capabilities):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissão insuficiente.")
        return account

    return dependency


def require_role(floor: Role) -> Callable[..., Account]:
    def dependency(account: Account = Depends(require_account)) -> Account:
        if not role_at_least(account.role, floor):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissão insuficiente.")
        return account

    return dependency
