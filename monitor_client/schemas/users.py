from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import AliasChoices, BaseModel, Field

from monitor_client.schemas.common import EntityModel

UserId = Union[int, str]


class UserBase(BaseModel):
    """Common fields for an operator account."""

    name: str = Field(..., description="Display name.")
    email: str = Field(..., description="Email used for alert notifications.")
    phone: str = Field("", description="Phone number used for SMS/voice escalation.")
    role: str = Field("", description="Free-form role; 'admin' gets special display treatment.")


class UserCreate(UserBase):
    """Request model for creating a user."""


class UserUpdate(BaseModel):
    """Request model for a partial user update."""

    name: Optional[str] = Field(default=None, description="Display name.")
    email: Optional[str] = Field(default=None, description="Email address.")
    phone: Optional[str] = Field(default=None, description="Phone number.")
    role: Optional[str] = Field(default=None, description="Free-form role.")


class User(EntityModel):
    """Cached projection of an operator account."""

    id: UserId = Field(..., description="User id (numeric or opaque string).")
    name: str
    email: str = ""
    phone: str = ""
    role: str = ""
    # Older backends send camelCase createdAt.
    created_at: Optional[datetime] = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt")
    )
