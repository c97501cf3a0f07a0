from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from monitor_client.config import sanitize_url_for_logs
from monitor_client.errors import ApiError, MalformedResponseError, TransportError
from monitor_client.schemas.common import ErrorBody

logger = logging.getLogger(__name__)


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_message(method: str, path: str, status_code: int, body: Any) -> str:
    try:
        detail = ErrorBody.model_validate(body).detail
    except PydanticValidationError:
        detail = body if isinstance(body, str) and body else None
    msg = f"{method} {path} returned {status_code}"
    return f"{msg}: {detail}" if detail else msg


class ApiTransport:
    """
    Thin async wrapper around one httpx.AsyncClient.

    - Every call is exactly one round trip; no retries, no backoff.
    - Failures are mapped onto the client error taxonomy (TransportError / ApiError).
    - Timeouts are httpx's defaults; a hung request only blocks its caller.
    """

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            transport=transport,
            headers={"Accept": "application/json", **(headers or {})},
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    # PUBLIC_INTERFACE
    async def request(self, method: str, path: str, json: Any = None) -> Any:
        """Send one request and return the decoded JSON body (None for empty bodies)."""
        method = method.upper()
        try:
            if json is None:
                response = await self._client.request(method, path)
            else:
                response = await self._client.request(method, path, json=json)
        except httpx.TransportError as exc:
            logger.warning(
                "Transport failure %s %s%s: %s",
                method,
                sanitize_url_for_logs(self._base_url),
                path,
                exc,
            )
            raise TransportError(method, path, str(exc) or exc.__class__.__name__) from exc

        if not response.is_success:
            body = _decode_body(response)
            raise ApiError(response.status_code, body, _error_message(method, path, response.status_code, body))

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(
                response.status_code,
                response.text,
                f"{method} {path} returned a body that is not JSON",
            ) from exc

    # PUBLIC_INTERFACE
    async def aclose(self) -> None:
        """Close the underlying HTTP client (idempotent)."""
        if not self._client.is_closed:
            await self._client.aclose()
