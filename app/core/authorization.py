# keep students out of staff and admin routes
from typing import List, Union
from fastapi import Depends, HTTPException
from starlette.status import HTTP_403_FORBIDDEN

from app.core.authentication import get_current_user
from app.src.models.users import User

ROLE_HIERARCHY = {"student": 1, "staff": 2, "admin": 3}


def require_roles(allowed_roles: Union[str, List[str]]):
    if isinstance(allowed_roles, str):
        allowed_roles = [allowed_roles]
    allowed_roles = [getattr(role, "value", role) for role in allowed_roles]

    async def check_roles(current_user: User = Depends(get_current_user)):
        if current_user.type not in allowed_roles:
            roles_str = ", ".join(allowed_roles)
            raise HTTPException(
                status_code=HTTP_403_FORBIDDEN,
                detail=f"Access forbidden: Requires role(s) {roles_str}",
            )
        return current_user

    return check_roles


def require_minimum_role(minimum_role: str):
    minimum_role = getattr(minimum_role, "value", minimum_role)
    if minimum_role not in ROLE_HIERARCHY:
        raise ValueError(f"Invalid role: {minimum_role}")
    min_level = ROLE_HIERARCHY[minimum_role]

    async def check_minimum_role(current_user: User = Depends(get_current_user)):
        user_level = ROLE_HIERARCHY.get(current_user.type, 0)
        if user_level < min_level:
            raise HTTPException(
                status_code=HTTP_403_FORBIDDEN,
                detail=f"Access forbidden: Requires minimum role of {minimum_role}",
            )
        return current_user

    return check_minimum_role
