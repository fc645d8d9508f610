"""HTTP client for the doorlog server.

Implements the remote write port and the last-log lookup over httpx, and
maps every response onto the error taxonomy in ``doorlog.protocols``:

- 2xx                  -> success
- 400                  -> ValidationError (never retried)
- 409 on /log          -> AlreadyRecorded (the server holds a row already)
- 404 on /delete-log   -> NotFoundInRemote (already absent)
- anything else, transport errors and timeouts -> TransientRemoteError
"""

import logging
from typing import Any, Dict, Optional

import httpx

from doorlog.protocols import (
    AlreadyRecorded,
    ConfigurationError,
    NotFoundInRemote,
    TransientRemoteError,
    ValidationError,
)
from doorlog.types import Event

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:240].strip() or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("message") or body.get("detail") or body)
    return str(body)


class LogApiClient:
    """Async client for ``/log``, ``/delete-log`` and ``/last-log``.

    Args:
        base_url: Server root URL.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: Optional[str],
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ConfigurationError("No server URL configured (set DOORLOG_API_URL)")
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "LogApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientRemoteError(f"Timed out calling {path}: {e}") from e
        except httpx.HTTPError as e:
            raise TransientRemoteError(f"Network error calling {path}: {e}") from e

    async def create(self, event: Event) -> None:
        """POST the event to /log."""
        response = await self._request("POST", "/log", json=event.to_dict())
        if response.is_success:
            return
        detail = _error_detail(response)
        if response.status_code == 400:
            raise ValidationError(f"Server rejected event {event.timestamp}: {detail}")
        if response.status_code == 409:
            raise AlreadyRecorded(f"Server already has {event.door_number}, {event.street_name}")
        raise TransientRemoteError(
            f"/log returned {response.status_code}: {detail}", status_code=response.status_code
        )

    async def delete(self, timestamp: str) -> None:
        """POST a delete for ``timestamp`` to /delete-log."""
        response = await self._request(
            "POST", "/delete-log", json={"timestampToDelete": timestamp}
        )
        if response.is_success:
            return
        detail = _error_detail(response)
        if response.status_code == 400:
            raise ValidationError(f"Server rejected delete {timestamp}: {detail}")
        if response.status_code == 404:
            raise NotFoundInRemote(f"No remote row for {timestamp}")
        raise TransientRemoteError(
            f"/delete-log returned {response.status_code}: {detail}",
            status_code=response.status_code,
        )

    async def last_log(self, user: str) -> Optional[Dict[str, Any]]:
        """GET the last known position for ``user``; None when the server has none."""
        response = await self._request("GET", "/last-log", params={"user": user})
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise TransientRemoteError(
                f"/last-log returned {response.status_code}: {_error_detail(response)}",
                status_code=response.status_code,
            )
        body = response.json()
        return body.get("lastLog") if isinstance(body, dict) else None

    async def health(self) -> bool:
        """True if the server answers /health with 200."""
        try:
            response = await self._request("GET", "/health")
        except TransientRemoteError as e:
            logger.debug(f"Health check failed: {e}")
            return False
        return response.status_code == 200
