from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator, model_validator

from monitor_client.schemas.common import AlertStatus, EntityModel, VerificationStatus


class Alert(EntityModel):
    """Cached projection of a backend-originated alert."""

    id: int = Field(..., description="Alert id.")
    service_id: int = Field(..., description="Id of the service the alert was raised against.")
    service_name: str = Field("", description="Service name snapshot taken when the alert was listed.")

    status: AlertStatus = Field(..., description="active until resolved.")
    verification_status: VerificationStatus = Field(..., description="pending until an operator verifies.")

    started_at: datetime = Field(..., description="UTC timestamp when the outage started.")
    resolved_at: Optional[datetime] = Field(default=None, description="Set iff status is resolved.")

    created_at: datetime
    updated_at: datetime

    @field_validator("resolved_at")
    @classmethod
    def _zero_time_is_unset(cls, v: Optional[datetime]) -> Optional[datetime]:
        # The backend serializes an unset timestamp as 0001-01-01T00:00:00Z.
        if v is not None and v.year == 1:
            return None
        return v

    @model_validator(mode="after")
    def _resolved_at_matches_status(self) -> "Alert":
        if (self.resolved_at is not None) != (self.status == AlertStatus.resolved):
            raise ValueError(
                f"alert {self.id}: resolved_at must be set iff status is resolved "
                f"(status={self.status.value}, resolved_at={self.resolved_at})"
            )
        return self
