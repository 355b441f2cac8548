"""
User-related Pydantic schemas.

The incident API only needs the authenticated principal: who is calling
and whether they are an administrator.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from models.user import UserRole


class UserInDB(BaseModel):
    """Authenticated principal resolved from a bearer token (internal use)."""

    id: str
    email: str
    name: Optional[str] = None
    role: UserRole = UserRole.CITIZEN
    created_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
