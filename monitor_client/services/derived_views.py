from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, List, Optional, Sequence, TypeVar

from pydantic import BaseModel

from monitor_client.schemas.alerts import Alert
from monitor_client.schemas.common import AlertStatus, ServiceStatus
from monitor_client.schemas.services import Service
from monitor_client.schemas.users import User

T = TypeVar("T")


@dataclass(frozen=True)
class HealthCounters:
    up: int
    down: int
    total: int
    down_pct: float


@dataclass(frozen=True)
class AlertPartition:
    active: List[Alert]
    resolved: List[Alert]


@dataclass(frozen=True)
class DashboardSummary:
    services_up: int
    services_down: int
    services_total: int
    down_pct: float
    active_alerts: int

    @property
    def down_pct_display(self) -> str:
        return f"{self.down_pct:.1f}%"


# PUBLIC_INTERFACE
def health_counters(services: Optional[Sequence[Service]]) -> HealthCounters:
    """Count up/down services; down_pct is relative to max(total, 1)."""
    services = services or []
    up = sum(1 for s in services if s.status == ServiceStatus.up)
    down = sum(1 for s in services if s.status == ServiceStatus.down)
    total = len(services)
    return HealthCounters(up=up, down=down, total=total, down_pct=down / max(total, 1) * 100)


# PUBLIC_INTERFACE
def partition_alerts(alerts: Optional[Sequence[Alert]]) -> AlertPartition:
    """Split alerts into active and resolved, preserving input order."""
    alerts = alerts or []
    return AlertPartition(
        active=[a for a in alerts if a.status == AlertStatus.active],
        resolved=[a for a in alerts if a.status == AlertStatus.resolved],
    )


# PUBLIC_INTERFACE
def dashboard_summary(services: Optional[Sequence[Service]], alerts: Optional[Sequence[Alert]]) -> DashboardSummary:
    """Headline numbers for the dashboard page."""
    counters = health_counters(services)
    return DashboardSummary(
        services_up=counters.up,
        services_down=counters.down,
        services_total=counters.total,
        down_pct=counters.down_pct,
        active_alerts=len(partition_alerts(alerts).active),
    )


def _field_strings(entity: Any) -> Iterable[str]:
    if isinstance(entity, BaseModel):
        values = entity.model_dump(mode="json").values()
    elif isinstance(entity, dict):
        values = entity.values()
    else:
        values = vars(entity).values()
    for v in values:
        if v is None:
            continue
        if isinstance(v, Enum):
            v = v.value
        yield str(v)


# PUBLIC_INTERFACE
def matches_query(entity: Any, query: str) -> bool:
    """Case-insensitive substring match against the string form of every field."""
    needle = (query or "").lower()
    if not needle:
        return True
    return any(needle in s.lower() for s in _field_strings(entity))


# PUBLIC_INTERFACE
def search(entities: Optional[Sequence[T]], query: str) -> List[T]:
    """Entities with at least one field matching the query; an empty query keeps everything."""
    return [e for e in (entities or []) if matches_query(e, query)]


def is_admin(user: User) -> bool:
    return (user.role or "").strip().lower() == "admin"


def last_checked(service: Service) -> datetime:
    """Time of the last backend health check for a service."""
    return service.updated_at
