from pydantic import BaseModel, Field
from datetime import datetime
from uuid import UUID


class UserBase(BaseModel):
    """Base user schema."""
    name: str | None = Field(None, max_length=100, description="User name")
    phone_number: str | None = Field(
        None,
        pattern=r"^\+?[1-9]\d{7,14}$",
        description="Default destination for wake-up calls",
    )


class UserCreate(UserBase):
    """Schema for creating a user."""
    external_id: str = Field(..., min_length=1, max_length=255, description="Identity provider user id")


class PreferencesResponse(BaseModel):
    """Schema for user preferences."""
    default_message: str | None
    timezone: str
    default_snooze_duration: int
    max_snooze_count: int
    allow_snooze: bool

    class Config:
        from_attributes = True


class UserResponse(UserBase):
    """Schema for user response."""
    id: UUID
    external_id: str
    created_at: datetime
    updated_at: datetime
    preferences: PreferencesResponse | None = None

    class Config:
        from_attributes = True
