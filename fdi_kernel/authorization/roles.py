"""
Authorization — capability sets checked per operation.

Identity verification is an external concern. The kernel only encodes which
role an operation requires and checks the caller's declared capabilities.
"""

import os
from enum import Enum
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from fdi_kernel.errors import Unauthorized


class Role(str, Enum):
    ORACLE = "oracle"   # Supplies observed flight data
    ADMIN = "admin"     # Operates the kernel; may also act as oracle


class Caller(BaseModel):
    """An already-authenticated party invoking a kernel operation."""

    model_config = ConfigDict(frozen=True)

    id: str
    roles: FrozenSet[Role] = frozenset()

    def has_any(self, *roles: Role) -> bool:
        return bool(self.roles.intersection(roles))


# Role requirements per boundary operation
UPDATE_FLIGHT_INFO_ROLES = (Role.ORACLE, Role.ADMIN)
EVALUATE_ROLES = (Role.ADMIN,)
WITHDRAW_ROLES = (Role.ADMIN,)


def require_role(caller: Caller, *accepted: Role) -> None:
    """Raise Unauthorized unless the caller holds at least one accepted role."""
    if not caller.has_any(*accepted):
        raise Unauthorized(
            f"Caller {caller.id} lacks required role: "
            f"one of {sorted(r.value for r in accepted)}"
        )


class RoleRegistry:
    """
    Maps caller ids to their capability sets. Configured at initialization.
    Unknown callers resolve to a caller with no roles.
    """

    def __init__(self, grants: Optional[Dict[str, Iterable[Role]]] = None):
        self._grants: Dict[str, FrozenSet[Role]] = {}
        for caller_id, roles in (grants or {}).items():
            self.grant(caller_id, *roles)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RoleRegistry":
        """Grant roles from comma-separated FDI_ADMIN_IDS and FDI_ORACLE_IDS."""
        env = os.environ if environ is None else environ
        registry = cls()
        for var, role in (("FDI_ADMIN_IDS", Role.ADMIN), ("FDI_ORACLE_IDS", Role.ORACLE)):
            for caller_id in env.get(var, "").split(","):
                if caller_id.strip():
                    registry.grant(caller_id.strip(), role)
        return registry

    def grant(self, caller_id: str, *roles: Role) -> None:
        current = self._grants.get(caller_id, frozenset())
        self._grants[caller_id] = current | frozenset(Role(r) for r in roles)

    def revoke(self, caller_id: str, *roles: Role) -> None:
        current = self._grants.get(caller_id, frozenset())
        self._grants[caller_id] = current - frozenset(roles)

    def resolve(self, caller_id: str) -> Caller:
        return Caller(id=caller_id, roles=self._grants.get(caller_id, frozenset()))
