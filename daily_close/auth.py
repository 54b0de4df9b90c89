from dataclasses import dataclass
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    BRANCH = "BRANCH"


@dataclass
class Principal:
    """Signed-in user as resolved by the upstream auth layer."""

    id: int
    username: str
    role: Role
    company_id: int
    branch_id: int | None
    active: bool
    display_name: str | None = None

    @property
    def identity(self) -> str:
        # Stored in opened_by / closed_by and the audit trail.
        return self.display_name or self.username or "Unknown"

    @property
    def is_branch_bound(self) -> bool:
        return self.role == Role.BRANCH


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, "principal", None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_role(*allowed: Role):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep


def assert_branch_scope(principal: Principal, target_branch_id: int) -> None:
    if not principal.is_branch_bound:
        return
    if principal.branch_id != target_branch_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)


def scoped_branch_id(principal: Principal, requested: int | None) -> int | None:
    """Branch filter a principal may use. Branch users always see their own branch."""
    if principal.is_branch_bound:
        return principal.branch_id
    return requested
