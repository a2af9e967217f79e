"""Pydantic schemas for profiles and account initialization"""

from datetime import datetime

from pydantic import BaseModel, Field


class ProfileResponse(BaseModel):
    id: str
    email: str | None
    display_name: str | None
    credits: int
    is_judge: bool
    is_admin: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ProfileUpdate(BaseModel):
    display_name: str | None = Field(None, min_length=1, max_length=100)
    is_judge: bool | None = None


class InitializeUserResponse(BaseModel):
    is_new_user: bool
    profile: ProfileResponse
