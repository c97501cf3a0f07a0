from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from monitor_client.schemas.common import EntityModel, ServiceStatus


class ServiceBase(BaseModel):
    """Common fields for a monitored service."""

    name: str = Field(..., description="Human-friendly service name.")
    type: str = Field(..., description="Check type, e.g. 'http' or 'tcp'.")
    url: str = Field(..., description="Target checked by the backend health-check scheduler.")
    config: str = Field(
        "",
        description="Opaque check configuration, expected (not validated) to contain JSON text.",
    )


class ServiceCreate(ServiceBase):
    """Request model for creating a service."""

    # New services are reported 'up' until the first health check says otherwise.
    status: ServiceStatus = Field(ServiceStatus.up, description="Initial status.")


class ServiceUpdate(BaseModel):
    """Request model for a partial service update (PUT with only the changed fields)."""

    name: Optional[str] = Field(default=None, description="Human-friendly service name.")
    type: Optional[str] = Field(default=None, description="Check type.")
    url: Optional[str] = Field(default=None, description="Check target.")
    config: Optional[str] = Field(default=None, description="Opaque check configuration.")
    status: Optional[ServiceStatus] = Field(default=None, description="Reported status.")


class Service(EntityModel):
    """Cached projection of a monitored service."""

    id: int = Field(..., description="Service id.")
    name: str
    type: str
    url: str
    config: str = ""
    status: ServiceStatus
    created_at: datetime = Field(..., description="UTC timestamp when the service was registered.")
    updated_at: datetime = Field(..., description="Last health-check time; advanced only by the backend.")
