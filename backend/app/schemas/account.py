"""Pydantic schemas for account and admin requests."""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AdminRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    admin_key: Optional[str] = Field(default=None, alias="adminKey")


class CheckUserEmailRequest(BaseModel):
    """Lookup by email or WordPress-era username."""

    email: Optional[str] = None
    username: Optional[str] = None

    @model_validator(mode="after")
    def require_identifier(self):
        if not (self.email or "").strip() and not (self.username or "").strip():
            raise ValueError("email or username is required")
        return self
