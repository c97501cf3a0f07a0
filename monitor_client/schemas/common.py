from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ServiceStatus(str, Enum):
    """Health of a monitored service as last reported by the backend."""

    up = "up"
    down = "down"


class AlertStatus(str, Enum):
    """Whether the outage an alert was raised for is still ongoing."""

    active = "active"
    resolved = "resolved"


class VerificationStatus(str, Enum):
    """Whether an operator has acknowledged the alert."""

    pending = "pending"
    verified = "verified"


class EntityModel(BaseModel):
    """Read-only projection of a server-owned record."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class ErrorBody(BaseModel):
    """Error envelope commonly returned by the backend for non-2xx responses."""

    detail: str = Field(..., description="Human-readable error details.")
    code: Optional[str] = Field(default=None, description="Optional machine-readable error code.")
    meta: Dict[str, Any] = Field(default_factory=dict, description="Optional metadata for debugging.")


# PUBLIC_INTERFACE
def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)
