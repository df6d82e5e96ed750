"""HTTP client for the tracker API."""

import logging
from dataclasses import dataclass

import httpx

from fitpair.api.schemas import (
    AccountPublic,
    AuthResponse,
    LogEntryPayload,
    UserDataResponse,
)
from fitpair.domain.models import LogEntry
from fitpair.services.reconciliation import EntrySink

_logger = logging.getLogger(__name__)

_ERROR_PREVIEW_CHARS = 100


class TrackerApiError(Exception):
    """Non-success response from the tracker API."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass
class HttpxTrackerClient(EntrySink):
    """Tracker API client implemented with httpx; keeps the session cookie."""

    http_client: httpx.AsyncClient
    timeout: float = 10

    @classmethod
    def create(cls, base_url: str) -> "HttpxTrackerClient":
        """Create a client with a managed httpx session."""
        return cls(http_client=httpx.AsyncClient(base_url=base_url))

    async def register(self, email: str, password: str, name: str) -> AccountPublic:
        """Create an account and start a session."""
        data = await self._request(
            "POST",
            "/api/auth/register",
            json={"email": email, "password": password, "name": name},
        )
        return self._start_session(data)

    async def login(self, email: str, password: str) -> AccountPublic:
        """Start a session for existing credentials."""
        data = await self._request(
            "POST", "/api/auth/login", json={"email": email, "password": password}
        )
        return self._start_session(data)

    async def logout(self) -> None:
        """End the current session."""
        await self._request("POST", "/api/auth/logout")
        self.http_client.cookies.clear()
        self.http_client.headers.pop("Authorization", None)

    async def me(self) -> AccountPublic:
        """Return the signed-in account."""
        data = await self._request("GET", "/api/auth/me")
        return AuthResponse.model_validate(data).user

    async def fetch_user_data(self) -> UserDataResponse:
        """Return stats and every log entry for the initial load."""
        data = await self._request("GET", "/api/user/data")
        return UserDataResponse.model_validate(data)

    async def append_entry(self, entry: LogEntry) -> None:
        """Persist one log entry."""
        payload = LogEntryPayload.from_domain(entry).model_dump(mode="json")
        await self._request("POST", "/api/logs", json=payload)

    async def update_weight(self, weight: float) -> None:
        """Persist the current weight."""
        await self._request("POST", "/api/user/weight", json={"weight": weight})

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    def _start_session(self, data: object) -> AccountPublic:
        auth = AuthResponse.model_validate(data)
        if auth.token:
            self.http_client.headers["Authorization"] = f"Bearer {auth.token}"
        return auth.user

    async def _request(
        self, method: str, url: str, json: dict[str, object] | None = None
    ) -> object:
        response = await self.http_client.request(
            method, url, json=json, timeout=self.timeout
        )
        is_json = "application/json" in response.headers.get("content-type", "")
        data: object = response.text
        if is_json:
            try:
                data = response.json()
            except ValueError:
                if response.is_success:
                    raise TrackerApiError(
                        response.status_code, "Invalid JSON response"
                    ) from None
        if response.is_success:
            return data
        message = _error_message(data, response.status_code)
        _logger.warning(
            "Tracker API request failed: %s %s status=%s error=%s",
            method,
            url,
            response.status_code,
            message,
        )
        raise TrackerApiError(response.status_code, message)


def _error_message(data: object, status_code: int) -> str:
    if isinstance(data, dict) and "error" in data:
        return str(data["error"])
    if isinstance(data, dict) and "detail" in data:
        return str(data["detail"])
    if isinstance(data, str) and data:
        if len(data) > _ERROR_PREVIEW_CHARS:
            return data[:_ERROR_PREVIEW_CHARS] + "..."
        return data
    return f"Request failed with status {status_code}"
