"""Google Sheets access for the doorlog backend.

The spreadsheet is the only shared state. ``SheetsClient`` talks to the
Sheets v4 values API over httpx; anything implementing ``SheetStore`` can
stand in for it (the tests use an in-memory fake).
"""

import json
import time
from typing import Annotated, Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx
from fastapi import Depends
from jose import JOSEError, jwt

from .config import Settings, get_settings
from .errors import ConfigurationError, RemoteStoreError
from .logging_config import get_logger

logger = get_logger("doorlog.sheets")

SHEETS_API = "https://sheets.googleapis.com/v4/spreadsheets"
SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
TOKEN_LIFETIME = 3600
# Refresh this many seconds before the token actually expires
TOKEN_REFRESH_MARGIN = 60


@runtime_checkable
class SheetStore(Protocol):
    """Remote read/write port over A1 ranges."""

    async def read(self, range_: str) -> list[list[str]]: ...

    async def append(self, range_: str, row: list[Any]) -> None: ...

    async def update(self, range_: str, values: list[list[Any]]) -> None: ...

    async def clear(self, range_: str) -> None: ...


def load_service_account(raw: str) -> dict:
    """Parse and check the service-account JSON from configuration."""
    try:
        info = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"GOOGLE_CREDENTIALS is not valid JSON: {e}") from e
    if not isinstance(info, dict):
        raise ConfigurationError("GOOGLE_CREDENTIALS must be a JSON object")
    missing = [k for k in ("client_email", "private_key", "token_uri") if not info.get(k)]
    if missing:
        raise ConfigurationError(f"GOOGLE_CREDENTIALS missing fields: {', '.join(missing)}")
    return info


class ServiceAccountToken:
    """Bearer token for a service account, exchanged from a signed JWT assertion."""

    def __init__(self, info: dict, scope: str = SHEETS_SCOPE):
        self.info = info
        self.scope = scope
        self._token: str | None = None
        self._expires_at = 0.0

    def assertion(self, now: float | None = None) -> str:
        """Sign the RS256 assertion sent to the token endpoint."""
        issued = int(now if now is not None else time.time())
        claims = {
            "iss": self.info["client_email"],
            "scope": self.scope,
            "aud": self.info["token_uri"],
            "iat": issued,
            "exp": issued + TOKEN_LIFETIME,
        }
        headers = {"kid": self.info["private_key_id"]} if self.info.get("private_key_id") else None
        try:
            return jwt.encode(claims, self.info["private_key"], algorithm="RS256", headers=headers)
        except (JOSEError, ValueError) as e:
            raise ConfigurationError(f"Could not sign service-account assertion: {e}") from e

    async def get(self, client: httpx.AsyncClient) -> str:
        if self._token and time.time() < self._expires_at - TOKEN_REFRESH_MARGIN:
            return self._token

        try:
            response = await client.post(
                self.info["token_uri"],
                data={
                    "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                    "assertion": self.assertion(),
                },
            )
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"Token exchange failed: {e}") from e
        if response.status_code != 200:
            raise RemoteStoreError(
                f"Token exchange returned {response.status_code}", response.status_code
            )
        body = response.json()
        self._token = body["access_token"]
        self._expires_at = time.time() + int(body.get("expires_in", TOKEN_LIFETIME))
        return self._token


class SheetsClient:
    """Sheets v4 values API client implementing ``SheetStore``."""

    def __init__(
        self,
        spreadsheet_id: str,
        token: ServiceAccountToken,
        value_input_option: str = "USER_ENTERED",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.spreadsheet_id = spreadsheet_id
        self.token = token
        self.value_input_option = value_input_option
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    def _url(self, range_: str, suffix: str = "") -> str:
        return f"{SHEETS_API}/{self.spreadsheet_id}/values/{quote(range_, safe='')}{suffix}"

    async def _request(self, method: str, url: str, **kwargs) -> dict:
        bearer = await self.token.get(self._client)
        try:
            response = await self._client.request(
                method, url, headers={"Authorization": f"Bearer {bearer}"}, **kwargs
            )
        except httpx.HTTPError as e:
            logger.warning(f"Sheets {method} failed: {e}")
            raise RemoteStoreError(f"Sheets request failed: {e}") from e
        if response.status_code >= 300:
            logger.warning(f"Sheets {method} returned {response.status_code}: {response.text[:200]}")
            raise RemoteStoreError(
                f"Sheets returned {response.status_code}", response.status_code
            )
        return response.json() if response.content else {}

    async def read(self, range_: str) -> list[list[str]]:
        body = await self._request("GET", self._url(range_))
        return [[str(cell) for cell in row] for row in body.get("values", [])]

    async def append(self, range_: str, row: list[Any]) -> None:
        await self._request(
            "POST",
            self._url(range_, ":append"),
            params={
                "valueInputOption": self.value_input_option,
                "insertDataOption": "INSERT_ROWS",
            },
            json={"values": [row]},
        )

    async def update(self, range_: str, values: list[list[Any]]) -> None:
        await self._request(
            "PUT",
            self._url(range_),
            params={"valueInputOption": self.value_input_option},
            json={"values": values},
        )

    async def clear(self, range_: str) -> None:
        await self._request("POST", self._url(range_, ":clear"), json={})

    async def aclose(self) -> None:
        await self._client.aclose()


_sheets_client: SheetsClient | None = None


def get_sheets_client(settings: Settings | None = None) -> SheetsClient:
    """Get cached Sheets client, failing fast when configuration is incomplete."""
    global _sheets_client
    if _sheets_client is None:
        if settings is None:
            settings = get_settings()
        if not settings.google_credentials or not settings.spreadsheet_id:
            raise ConfigurationError("GOOGLE_CREDENTIALS and SPREADSHEET_ID must be set")
        token = ServiceAccountToken(load_service_account(settings.google_credentials))
        _sheets_client = SheetsClient(
            settings.spreadsheet_id,
            token,
            value_input_option=settings.value_input_option,
            timeout=settings.sheets_timeout,
        )
    return _sheets_client


async def close_sheets_client() -> None:
    global _sheets_client
    if _sheets_client is not None:
        await _sheets_client.aclose()
        _sheets_client = None


def get_store(settings: Annotated[Settings, Depends(get_settings)]) -> SheetStore:
    """FastAPI dependency for the spreadsheet store."""
    return get_sheets_client(settings)


# Type alias for dependency injection
Store = Annotated[SheetStore, Depends(get_store)]
