"""Pydantic schemas for Users (hosts)."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")
    display_name: Optional[str] = None


class UserOut(BaseModel):
    user_id: str
    username: str
    display_name: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
