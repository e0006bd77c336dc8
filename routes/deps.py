"""
Request dependencies: acting user and permission gate.

The identity provider sits in front of this API and forwards the
authenticated user in headers.
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status
import structlog

from models.ledger import ActingUser
from utils.permissions import Permission, has_permission

logger = structlog.get_logger(__name__)


async def get_acting_user(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    x_user_name: Optional[str] = Header(default=None, alias="X-User-Name"),
    x_user_role: Optional[str] = Header(default=None, alias="X-User-Role"),
) -> ActingUser:
    """Acting user from forwarded identity headers."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header"
        )
    return ActingUser(
        user_id=x_user_id,
        display_name=x_user_name or "",
        role=x_user_role,
    )


def require_permission(permission: Permission):
    """Dependency factory rejecting users whose role lacks permission."""

    async def checker(user: ActingUser = Depends(get_acting_user)) -> ActingUser:
        if not has_permission(user.role, permission):
            logger.warning(
                "permission_denied",
                user_id=user.user_id,
                role=user.role,
                permission=permission.value
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permission: {permission.value}"
            )
        return user

    return checker
