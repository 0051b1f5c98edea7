"""
Security guards for role-based access control.

Replaces database row-level policies: Viewers read, Planners and Admins
mutate schedules, Admins alone manage tuning, audit and operations.
"""

from typing import List
from fastapi import Depends, HTTPException, status
from transport_planner.app.models.enums import UserRole
from transport_planner.app.core.dependencies import get_current_user


def require_role(allowed_roles: List[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/templates")
        async def create(current_user: dict = Depends(require_role(PLANNERS))):
            ...

    Raises:
        HTTPException 403 if user role is not in allowed_roles
    """
    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        user_role_str = current_user.get("role")

        if not user_role_str:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Role information missing from token"
            )

        try:
            user_role = UserRole(user_role_str)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid role in token"
            )

        if user_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {', '.join([r.value for r in allowed_roles])}"
            )

        return current_user

    return role_checker


ALL_ROLES = [UserRole.ADMIN, UserRole.PLANNER, UserRole.VIEWER]
PLANNERS = [UserRole.ADMIN, UserRole.PLANNER]
ADMINS = [UserRole.ADMIN]
