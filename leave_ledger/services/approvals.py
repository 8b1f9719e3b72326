"""
Who may act on a leave request.

Authentication happens upstream; by the time a request reaches the workflow
the caller is an Actor with an id and a role. The workflow asks an
ApprovalGuard instead of comparing role strings itself.
"""
import enum
from dataclasses import dataclass
from typing import Protocol


class UserRole(str, enum.Enum):
    """
    Roles as issued by the identity gateway.

    - SUPER_ADMIN: Platform-wide access (multi-tenant management)
    - HR_ADMIN: Full HR access within the tenant, may change leave policy
    - HR_MANAGER: Department-level HR access
    - MANAGER: Team manager (approvals for direct reports)
    - EMPLOYEE: Self-service access
    """
    SUPER_ADMIN = "SUPER_ADMIN"
    HR_ADMIN = "HR_ADMIN"
    HR_MANAGER = "HR_MANAGER"
    MANAGER = "MANAGER"
    EMPLOYEE = "EMPLOYEE"


APPROVER_ROLES = frozenset({UserRole.SUPER_ADMIN, UserRole.HR_ADMIN, UserRole.HR_MANAGER, UserRole.MANAGER})
POLICY_ADMIN_ROLES = frozenset({UserRole.SUPER_ADMIN, UserRole.HR_ADMIN})


@dataclass(frozen=True)
class Actor:
    id: str
    role: UserRole = UserRole.EMPLOYEE

    @property
    def can_approve(self) -> bool:
        """Check if the actor holds a role that approves requests at all."""
        return self.role in APPROVER_ROLES

    @property
    def is_policy_admin(self) -> bool:
        return self.role in POLICY_ADMIN_ROLES


class ApprovalGuard(Protocol):
    def can_apply(self, actor: Actor, employee_id: str) -> bool: ...

    def can_approve(self, actor: Actor, request) -> bool: ...

    def can_cancel(self, actor: Actor, request) -> bool: ...


class RoleApprovalGuard:
    """Owners apply for and withdraw their own requests; approvers act on everyone's."""

    def can_apply(self, actor: Actor, employee_id: str) -> bool:
        return actor.id == employee_id or actor.can_approve

    def can_approve(self, actor: Actor, request) -> bool:
        return actor.can_approve and actor.id != request.employee_id

    def can_cancel(self, actor: Actor, request) -> bool:
        return actor.id == request.employee_id or actor.can_approve
