"""Domain Entities - Villa back-office accounts"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from typing import Optional

# Owners and staff share one role: edit villa content and verify payment slips
VILLA_ADMIN_ROLE = "ADMIN"


class User(BaseModel):
    """Back-office user allowed to edit the villa and verify payments"""
    user_id: UUID = Field(default_factory=uuid4)
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str = VILLA_ADMIN_ROLE
    disabled: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == VILLA_ADMIN_ROLE and not self.disabled

    class Config:
        from_attributes = True


class UserInDB(User):
    """Account record with its bcrypt hash"""
    hashed_password: str
