"""
Pydantic schemas for dashboard user management
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import List, Optional
from datetime import datetime

MIN_PASSWORD_LENGTH = 4


class UserCreate(BaseModel):
    """Schema for creating a dashboard user"""
    username: str = Field(..., min_length=1, max_length=50, description="Username (stored lowercase)")
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, description="Password (min 4 chars)")
    email: Optional[EmailStr] = Field(None, description="Email; defaults to <username>@local.internal")

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v):
        v = v.strip().lower()
        if not v:
            raise ValueError("Username is required")
        return v

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_as_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class UserResponse(BaseModel):
    id: str
    username: str
    email: str
    created_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
