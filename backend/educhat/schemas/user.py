from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr

from educhat.db.models.user import UserRole


class UserLogin(BaseModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = None


class UserRead(BaseModel):
    id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None
    role: UserRole
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Token(BaseModel):
    access_token: str
    token_type: str
    user: UserRead


class UnreadCount(BaseModel):
    count: int
