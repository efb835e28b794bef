"""User data model for tasklanes."""

from typing import Optional
from pydantic import BaseModel, Field


class CurrentUser(BaseModel):
    """Opaque identity supplied by the external auth provider."""

    id: str = Field(..., description="Unique user identifier (owner id for every task)")
    display_name: Optional[str] = Field(None, description="User display name")
    email: Optional[str] = Field(None, description="User email address")
    photo_url: Optional[str] = Field(None, description="Avatar URL")

    class Config:
        """Pydantic configuration."""
        frozen = True
