from enum import Enum
from typing import Optional, Union
from pydantic import BaseModel, ConfigDict


class UserTypeEnum(str, Enum):
    student = "student"
    staff = "staff"
    admin = "admin"

StaffRoleList = [UserTypeEnum.staff, UserTypeEnum.admin]


class UserPublic(BaseModel):
    """Public user data for embedding in borrowing and fine payloads"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    name: str
    email: Optional[str] = None
    registration_number: Union[str, None] = None
    is_active: bool
