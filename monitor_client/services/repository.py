from __future__ import annotations

from typing import Any, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from monitor_client.errors import MalformedResponseError, ValidationError
from monitor_client.schemas.alerts import Alert
from monitor_client.schemas.services import Service, ServiceCreate, ServiceUpdate
from monitor_client.schemas.settings import Settings
from monitor_client.schemas.users import User, UserCreate, UserId, UserUpdate
from monitor_client.transport import ApiTransport

M = TypeVar("M", bound=BaseModel)


def _decode_one(model: Type[M], body: Any, what: str) -> M:
    try:
        return model.model_validate(body)
    except PydanticValidationError as exc:
        raise MalformedResponseError(200, body, f"{what}: unexpected response body ({exc.error_count()} errors)") from exc


def _decode_list(model: Type[M], body: Any, what: str) -> List[M]:
    # Some backends return null instead of [] for an empty table.
    if body is None:
        return []
    if not isinstance(body, list):
        raise MalformedResponseError(200, body, f"{what}: expected a JSON array")
    return [_decode_one(model, item, what) for item in body]


def _require(value: Optional[str], field: str) -> None:
    if value is None or not str(value).strip():
        raise ValidationError(field)


def _changes(payload: Union[BaseModel, dict]) -> dict:
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json", exclude_none=True)
    return {k: v for k, v in payload.items() if v is not None}


class RepositoryClient:
    """
    Typed REST operations per entity kind.

    Each method is exactly one round trip through the transport; errors
    (TransportError / ApiError) propagate unchanged and nothing is retried.
    """

    def __init__(self, transport: ApiTransport):
        self._transport = transport

    # -------- services --------

    # PUBLIC_INTERFACE
    async def list_services(self) -> List[Service]:
        """GET /services"""
        body = await self._transport.request("GET", "/services")
        return _decode_list(Service, body, "list services")

    # PUBLIC_INTERFACE
    async def create_service(self, payload: ServiceCreate) -> Service:
        """POST /services"""
        _require(payload.name, "name")
        _require(payload.url, "url")
        body = await self._transport.request("POST", "/services", json=payload.model_dump(mode="json"))
        return _decode_one(Service, body, "create service")

    # PUBLIC_INTERFACE
    async def update_service(self, service_id: int, changes: Union[ServiceUpdate, dict]) -> Service:
        """PUT /services/{id} with only the changed fields."""
        body = await self._transport.request("PUT", f"/services/{service_id}", json=_changes(changes))
        return _decode_one(Service, body, "update service")

    # PUBLIC_INTERFACE
    async def delete_service(self, service_id: int) -> None:
        """DELETE /services/{id}"""
        await self._transport.request("DELETE", f"/services/{service_id}")

    # -------- alerts --------

    # PUBLIC_INTERFACE
    async def list_alerts(self) -> List[Alert]:
        """GET /alerts"""
        body = await self._transport.request("GET", "/alerts")
        return _decode_list(Alert, body, "list alerts")

    # PUBLIC_INTERFACE
    async def resolve_alert(self, alert_id: int) -> Alert:
        """POST /alerts/{id}/resolve; returns the alert as the backend now has it."""
        body = await self._transport.request("POST", f"/alerts/{alert_id}/resolve")
        return _decode_one(Alert, body, "resolve alert")

    # PUBLIC_INTERFACE
    async def verify_alert(self, alert_id: int) -> Alert:
        """POST /alerts/{id}/verify; returns the alert as the backend now has it."""
        body = await self._transport.request("POST", f"/alerts/{alert_id}/verify")
        return _decode_one(Alert, body, "verify alert")

    # -------- users --------

    # PUBLIC_INTERFACE
    async def list_users(self) -> List[User]:
        """GET /users"""
        body = await self._transport.request("GET", "/users")
        return _decode_list(User, body, "list users")

    # PUBLIC_INTERFACE
    async def create_user(self, payload: UserCreate) -> User:
        """POST /users"""
        _require(payload.name, "name")
        _require(payload.email, "email")
        body = await self._transport.request("POST", "/users", json=payload.model_dump(mode="json"))
        return _decode_one(User, body, "create user")

    # PUBLIC_INTERFACE
    async def update_user(self, user_id: UserId, changes: Union[UserUpdate, dict]) -> User:
        """PUT /users/{id} with only the changed fields."""
        body = await self._transport.request("PUT", f"/users/{user_id}", json=_changes(changes))
        return _decode_one(User, body, "update user")

    # PUBLIC_INTERFACE
    async def delete_user(self, user_id: UserId) -> None:
        """DELETE /users/{id}"""
        await self._transport.request("DELETE", f"/users/{user_id}")

    # -------- settings --------

    # PUBLIC_INTERFACE
    async def get_settings(self) -> Settings:
        """GET /settings"""
        body = await self._transport.request("GET", "/settings")
        return _decode_one(Settings, body, "get settings")

    # PUBLIC_INTERFACE
    async def save_settings(self, settings: Settings) -> Settings:
        """PUT /settings (whole-object replace). An empty response echoes the saved settings."""
        body = await self._transport.request("PUT", "/settings", json=settings.model_dump(mode="json", by_alias=True))
        if body is None:
            return settings
        return _decode_one(Settings, body, "save settings")
