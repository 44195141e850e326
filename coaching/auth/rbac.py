from fastapi import Depends, HTTPException, status

from coaching.auth.dependencies import get_current_user
from coaching.auth.schemas import CurrentUser
from coaching.core.enums import ADMIN_ROLES


def require_roles(*roles: str):
    """
    Dependency factory to restrict an endpoint to some roles.
    SUPER_ADMIN and ADMIN always pass.

    Example:
        Depends(require_roles("TEACHER"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role in ADMIN_ROLES:
            return current_user
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _checker
