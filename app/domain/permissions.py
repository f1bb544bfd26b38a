"""Role → capability table and the coarse role hierarchy.

Pure lookups with no failure modes: an unknown role has no capabilities and
rank 0.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, Optional, Union

from .models.account import Role


class Capability(str, Enum):
    # Accounts
    USER_CREATE = "user:create"
    USER_READ = "user:read"
    USER_UPDATE = "user:update"
    USER_DELETE = "user:delete"
    USER_APPROVE = "user:approve"
    ADMIN_MANAGE = "admin:manage"
    AGENT_MANAGE = "agent:manage"
    CITIZEN_MANAGE = "citizen:manage"

    # System
    SYSTEM_CONFIG = "system:config"
    SYSTEM_LOGS = "system:logs"
    SYSTEM_BACKUP = "system:backup"

    # Field operations
    OPERATION_CREATE = "operation:create"
    OPERATION_MANAGE = "operation:manage"
    OPERATION_COORDINATE = "operation:coordinate"
    INCIDENT_CREATE = "incident:create"
    INCIDENT_MANAGE = "incident:manage"
    PROTECTIVE_MEASURE_REQUEST = "protective_measure:request"
    PROTECTIVE_MEASURE_MANAGE = "protective_measure:manage"

    # Reports
    REPORT_VIEW_ALL = "report:view_all"
    REPORT_VIEW_OWN = "report:view_own"
    REPORT_EXPORT = "report:export"

    # Alerts
    ALERT_CREATE = "alert:create"
    ALERT_BROADCAST = "alert:broadcast"
    ALERT_MANAGE = "alert:manage"

    # Data
    DATA_EXPORT = "data:export"
    DATA_IMPORT = "data:import"
    DATA_DELETE = "data:delete"
    OWN_DATA_VIEW = "own_data:view"


ALL_CAPABILITIES: FrozenSet[Capability] = frozenset(Capability)

MASTER_ONLY_CAPABILITIES: FrozenSet[Capability] = frozenset(
    {
        Capability.ADMIN_MANAGE,
        Capability.SYSTEM_BACKUP,
        Capability.DATA_DELETE,
    }
)

ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.MASTER: ALL_CAPABILITIES,
    Role.ADMIN: ALL_CAPABILITIES - MASTER_ONLY_CAPABILITIES,
    Role.AGENT: frozenset(
        {
            Capability.USER_READ,
            Capability.CITIZEN_MANAGE,
            Capability.OPERATION_CREATE,
            Capability.OPERATION_MANAGE,
            Capability.INCIDENT_CREATE,
            Capability.INCIDENT_MANAGE,
            Capability.PROTECTIVE_MEASURE_MANAGE,
            Capability.REPORT_VIEW_ALL,
            Capability.REPORT_VIEW_OWN,
            Capability.ALERT_CREATE,
            Capability.ALERT_MANAGE,
            Capability.OWN_DATA_VIEW,
        }
    ),
    Role.CITIZEN: frozenset(
        {
            Capability.OWN_DATA_VIEW,
            Capability.REPORT_VIEW_OWN,
            Capability.PROTECTIVE_MEASURE_REQUEST,
        }
    ),
}

ROLE_RANKS: Dict[Role, int] = {
    Role.MASTER: 4,
    Role.ADMIN: 3,
    Role.AGENT: 2,
    Role.CITIZEN: 1,
}

RoleLike = Union[Role, str, None]
CapabilityLike = Union[Capability, str]


def _coerce_role(role: RoleLike) -> Optional[Role]:
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def _coerce_capability(capability: CapabilityLike) -> Optional[Capability]:
    if isinstance(capability, Capability):
        return capability
    try:
        return Capability(capability)
    except ValueError:
        return None


def capabilities_for(role: RoleLike) -> FrozenSet[Capability]:
    resolved = _coerce_role(role)
    if resolved is None:
        return frozenset()
    return ROLE_CAPABILITIES.get(resolved, frozenset())


def has_capability(role: RoleLike, capability: CapabilityLike) -> bool:
    resolved = _coerce_capability(capability)
    return resolved is not None and resolved in capabilities_for(role)


def has_any_capability(role: RoleLike, capabilities: Iterable[CapabilityLike]) -> bool:
    return any(has_capability(role, capability) for capability in capabilities)


def has_all_capabilities(role: RoleLike, capabilities: Iterable[CapabilityLike]) -> bool:
    return all(has_capability(role, capability) for capability in capabilities)


def role_rank(role: RoleLike) -> int:
    resolved = _coerce_role(role)
    return ROLE_RANKS.get(resolved, 0) if resolved is not None else 0


def role_at_least(role: RoleLike, floor: RoleLike) -> bool:
    """True when ``role`` sits at or above ``floor`` in master > admin > agent > citizen."""
    required = role_rank(floor)
    if required == 0:
        return False
    return role_rank(role) >= required
