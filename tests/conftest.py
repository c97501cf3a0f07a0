from __future__ import annotations

from collections import Counter
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
import pytest
from fastapi import Body, FastAPI, HTTPException, Response, status

from monitor_client.config import ClientConfig
from monitor_client.state import ClientState, close_state, create_state


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BackendStub:
    """
    In-memory stand-in for the monitoring backend's REST contract.

    - Counts calls per operation (e.g. calls["list_services"]).
    - fail(op, status_code) makes the next call of that operation return an error.
    - auto_verify_on_resolve simulates a backend side effect on resolve.
    """

    def __init__(self) -> None:
        self.services: Dict[int, dict] = {}
        self.alerts: Dict[int, dict] = {}
        self.users: Dict[int, dict] = {}
        self.settings: Dict[str, Any] = {
            "checkInterval": 300,
            "alertThreshold": 3,
            "enableNotifications": True,
            "enableEmailAlerts": True,
            "enableSMSAlerts": False,
            "smtpServer": "smtp.example.com",
            "smtpPort": 587,
            "smtpUsername": "ops",
            "smtpPassword": "secret",
        }
        self.calls: Counter = Counter()
        self.auto_verify_on_resolve = False
        self._failures: Dict[str, int] = {}
        self._next_id = 1
        self.app = self._build_app()

    def _new_id(self) -> int:
        nid = self._next_id
        self._next_id += 1
        return nid

    def fail(self, op: str, status_code: int) -> None:
        self._failures[op] = status_code

    def _hit(self, op: str) -> None:
        self.calls[op] += 1
        code = self._failures.pop(op, None)
        if code is not None:
            raise HTTPException(status_code=code, detail=f"{op} failed")

    def add_service(self, name: str, status_value: str = "up") -> dict:
        now = _iso_now()
        svc = {
            "id": self._new_id(),
            "name": name,
            "type": "http",
            "url": f"https://{name.lower()}.example.com/health",
            "config": "{}",
            "status": status_value,
            "created_at": now,
            "updated_at": now,
        }
        self.services[svc["id"]] = svc
        return svc

    def add_alert(
        self,
        service: dict,
        status_value: str = "active",
        verification: str = "pending",
        alert_id: Optional[int] = None,
    ) -> dict:
        now = _iso_now()
        alert = {
            "id": alert_id or self._new_id(),
            "service_id": service["id"],
            "service_name": service["name"],
            "status": status_value,
            "verification_status": verification,
            "started_at": now,
            # Unset timestamps come back as the zero time, as the real backend does.
            "resolved_at": now if status_value == "resolved" else "0001-01-01T00:00:00Z",
            "created_at": now,
            "updated_at": now,
        }
        self.alerts[alert["id"]] = alert
        return alert

    def add_user(self, name: str, role: str = "viewer") -> dict:
        user = {
            "id": self._new_id(),
            "name": name,
            "email": f"{name.lower()}@example.com",
            "phone": "+15550100",
            "role": role,
            "created_at": _iso_now(),
        }
        self.users[user["id"]] = user
        return user

    def _build_app(self) -> FastAPI:
        app = FastAPI(title="Service Monitor backend stub")
        stub = self

        @app.get("/api/services")
        def list_services() -> list:
            stub._hit("list_services")
            return list(stub.services.values())

        @app.post("/api/services", status_code=status.HTTP_201_CREATED)
        def create_service(payload: Dict[str, Any] = Body(...)) -> dict:
            stub._hit("create_service")
            svc = stub.add_service(payload["name"], payload.get("status", "up"))
            svc.update({k: payload[k] for k in ("type", "url", "config") if k in payload})
            return svc

        @app.put("/api/services/{service_id}")
        def update_service(service_id: int, payload: Dict[str, Any] = Body(...)) -> dict:
            stub._hit("update_service")
            svc = stub.services.get(service_id)
            if svc is None:
                raise HTTPException(status_code=404, detail="service not found")
            svc.update({k: v for k, v in payload.items() if k in ("name", "type", "url", "config", "status")})
            for alert in stub.alerts.values():
                if alert["service_id"] == service_id:
                    alert["service_name"] = svc["name"]
            return svc

        @app.delete("/api/services/{service_id}")
        def delete_service(service_id: int) -> Response:
            stub._hit("delete_service")
            if stub.services.pop(service_id, None) is None:
                raise HTTPException(status_code=404, detail="service not found")
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        @app.get("/api/alerts")
        def list_alerts() -> list:
            stub._hit("list_alerts")
            return list(stub.alerts.values())

        @app.post("/api/alerts/{alert_id}/resolve")
        def resolve_alert(alert_id: int) -> dict:
            stub._hit("resolve_alert")
            alert = stub.alerts.get(alert_id)
            if alert is None:
                raise HTTPException(status_code=404, detail="alert not found")
            if alert["status"] == "resolved":
                raise HTTPException(status_code=409, detail="alert already resolved")
            alert["status"] = "resolved"
            alert["resolved_at"] = _iso_now()
            if stub.auto_verify_on_resolve:
                alert["verification_status"] = "verified"
            return alert

        @app.post("/api/alerts/{alert_id}/verify")
        def verify_alert(alert_id: int) -> dict:
            stub._hit("verify_alert")
            alert = stub.alerts.get(alert_id)
            if alert is None:
                raise HTTPException(status_code=404, detail="alert not found")
            alert["verification_status"] = "verified"
            return alert

        @app.get("/api/users")
        def list_users() -> list:
            stub._hit("list_users")
            return list(stub.users.values())

        @app.post("/api/users", status_code=status.HTTP_201_CREATED)
        def create_user(payload: Dict[str, Any] = Body(...)) -> dict:
            stub._hit("create_user")
            user = stub.add_user(payload["name"], payload.get("role", ""))
            user.update({k: payload[k] for k in ("email", "phone") if k in payload})
            return user

        @app.put("/api/users/{user_id}")
        def update_user(user_id: int, payload: Dict[str, Any] = Body(...)) -> dict:
            stub._hit("update_user")
            user = stub.users.get(user_id)
            if user is None:
                raise HTTPException(status_code=404, detail="user not found")
            user.update({k: v for k, v in payload.items() if k in ("name", "email", "phone", "role")})
            return user

        @app.delete("/api/users/{user_id}")
        def delete_user(user_id: int) -> Response:
            stub._hit("delete_user")
            if stub.users.pop(user_id, None) is None:
                raise HTTPException(status_code=404, detail="user not found")
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        @app.get("/api/settings")
        def get_settings() -> dict:
            stub._hit("get_settings")
            return stub.settings

        @app.put("/api/settings")
        def put_settings(payload: Dict[str, Any] = Body(...)) -> dict:
            stub._hit("put_settings")
            stub.settings = dict(payload)
            return stub.settings

        return app


@pytest.fixture
def anyio_backend() -> str:
    """The client is built on asyncio primitives."""
    return "asyncio"


@pytest.fixture
def backend() -> BackendStub:
    return BackendStub()


@pytest.fixture
def config() -> ClientConfig:
    """Deterministic config; polling is slow enough not to interleave with assertions."""
    return ClientConfig(
        api_base_url="http://test/api",
        services_poll_interval_sec=30.0,
        cache_patch_in_place=False,
        log_level="DEBUG",
        api_base_url_source="test",
    )


@pytest.fixture
async def state(backend: BackendStub, config: ClientConfig) -> AsyncIterator[ClientState]:
    """Client session bound to the backend stub through httpx ASGITransport."""
    st = create_state(config, http_transport=httpx.ASGITransport(app=backend.app))
    try:
        yield st
    finally:
        await close_state(st)
