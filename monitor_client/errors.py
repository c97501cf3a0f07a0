from __future__ import annotations

from typing import Any, Optional


class ClientError(Exception):
    """Base class for every failure surfaced by the dashboard client."""


class TransportError(ClientError):
    """The request never reached the backend, or no response came back."""

    def __init__(self, method: str, path: str, detail: str):
        super().__init__(f"{method} {path} failed: {detail}")
        self.method = method
        self.path = path
        self.detail = detail


class ApiError(ClientError):
    """The backend answered with a non-2xx status."""

    def __init__(self, status_code: int, body: Any = None, message: Optional[str] = None):
        super().__init__(message or f"API request failed with status {status_code}")
        self.status_code = int(status_code)
        self.body = body


class MalformedResponseError(ApiError):
    """A 2xx response whose body does not decode into the expected entity."""


class ValidationError(ClientError):
    """A create/update payload is missing a required field."""

    def __init__(self, field: str):
        super().__init__(f"{field} must not be empty")
        self.field = field


class InvalidTransitionError(ClientError):
    """An alert action was requested from a state that does not offer it."""

    def __init__(self, alert_id: int, action: str, state: Any):
        super().__init__(f"alert {alert_id}: action '{action}' is not available in state {state}")
        self.alert_id = alert_id
        self.action = action
        self.state = state
