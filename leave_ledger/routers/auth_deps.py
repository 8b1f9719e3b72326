"""
Identity Dependencies.

Authentication and role resolution live in the upstream gateway, which
forwards the caller as trusted headers. These dependencies turn those
headers into an Actor and a tenant scope for the leave endpoints.
"""
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from leave_ledger.core.config import settings
from leave_ledger.services.approvals import Actor, UserRole

logger = logging.getLogger(__name__)


def get_tenant_id(x_tenant_id: Optional[str] = Header(default=None)) -> str:
    """Tenant scope for the request; falls back to the configured default tenant."""
    tenant_id = (x_tenant_id or "").strip()
    return tenant_id or settings.default_tenant_id


def get_current_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
) -> Actor:
    """
    Builds the Actor from gateway headers.
    """
    actor_id = (x_actor_id or "").strip()
    if not actor_id:
        logger.warning("Identity missing: no X-Actor-Id header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing actor identity",
        )

    try:
        role = UserRole((x_actor_role or UserRole.EMPLOYEE.value).strip().upper())
    except ValueError:
        logger.warning(f"Identity rejected: unknown role {x_actor_role!r} for {actor_id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {x_actor_role}",
        )
    return Actor(id=actor_id, role=role)


def require_policy_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Only HR admins change quota policy or force recomputes."""
    if not actor.is_policy_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Access denied. Required roles: {[UserRole.SUPER_ADMIN.value, UserRole.HR_ADMIN.value]}",
        )
    return actor
