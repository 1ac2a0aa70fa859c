"""HTTP client for the remote onboarding backend.

Wraps every boundary operation the wizard, admin editor and data viewer
consume.  Transport and upstream failures are converted to BoundaryError
with a retry-oriented message; the upstream's own message (if it sent one)
is kept on `BoundaryError.detail` so callers can show it verbatim.

Endpoints (relative to settings.api_base_url):
    GET  /users/email/{email}        200 = registered, 404 = available
    POST /users/register-complete    full registration payload
    GET  /users  (fallback /data/users)
    GET  /users/{id}
    GET  /admin/config               {"2": [...], "3": [...]}
    PUT  /admin/config               {"componentPageMap": {group: step}}
    GET  /users/test                 health check
"""

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from onboarding.config import settings
from onboarding.middleware.exceptions import BoundaryError
from onboarding.schemas.onboarding import RegisteredUser, RegistrationPayload

logger = logging.getLogger(__name__)


def _extract_detail(response: httpx.Response) -> str | None:
    """Best-effort upstream error message from a failed response."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None

    if isinstance(body, str):
        return body or None
    if isinstance(body, dict):
        for key in ("message", "detail", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return value["message"]
    return None


class BackendClient:
    """Async client for the onboarding backend API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.api_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        generic_error: str = "Request failed",
        accept_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        """Send a request and map failures to BoundaryError.

        Statuses listed in `accept_status` are returned to the caller even
        when they are errors (e.g. 404 on the email check means "available").
        """
        url = f"{self.base_url}{path}"
        logger.debug("API request: %s %s", method, url)
        try:
            response = await self.client.request(method, path, json=json_body)
        except httpx.TimeoutException as e:
            logger.error("API timeout: %s %s", method, url)
            raise BoundaryError("Request timeout - please try again") from e
        except httpx.HTTPError as e:
            logger.error("API transport error: %s %s: %s", method, url, e)
            raise BoundaryError("Network error - please check your connection") from e

        logger.debug("API response: %s %s", response.status_code, url)

        if response.status_code in accept_status or response.is_success:
            return response

        detail = _extract_detail(response)
        logger.error(
            "API error: status=%s url=%s detail=%s",
            response.status_code, url, detail,
        )
        if response.status_code >= 500:
            message = "Server error - please try again later"
        else:
            message = detail or generic_error
        raise BoundaryError(message, upstream_status=response.status_code, detail=detail)

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error("API returned non-JSON body from %s", response.request.url)
            raise BoundaryError("Malformed response from server") from e

    # ── Users ────────────────────────────────────────────────

    async def check_email_exists(self, email: str) -> bool:
        """True if the backend already has a user with this email."""
        response = await self._request(
            "GET",
            f"/users/email/{quote(email, safe='')}",
            generic_error="Email check failed",
            accept_status=(404,),
        )
        exists = response.status_code != 404
        logger.info("Email check for %s: %s", email, "exists" if exists else "available")
        return exists

    async def register_complete(self, payload: RegistrationPayload) -> RegisteredUser:
        response = await self._request(
            "POST",
            "/users/register-complete",
            json_body=payload.model_dump(),
            generic_error="Registration failed",
        )
        data = self._json(response)
        try:
            user = RegisteredUser.model_validate(data)
        except ValueError as e:
            raise BoundaryError("Malformed registration response from server") from e
        logger.info("Registration successful: id=%s", user.id)
        return user

    async def list_users(self) -> Any:
        """Raw user list; falls back to /data/users if /users fails.

        Returns the decoded JSON untouched, shape checks belong to the
        caller.
        """
        try:
            response = await self._request("GET", "/users", generic_error="Failed to load users")
        except BoundaryError as e:
            logger.info("Primary user list failed (%s), trying /data/users", e.message)
            response = await self._request(
                "GET", "/data/users", generic_error="Failed to load users"
            )
        return self._json(response)

    async def get_user(self, user_id: int | str) -> dict:
        response = await self._request(
            "GET", f"/users/{quote(str(user_id), safe='')}", generic_error="User not found"
        )
        return self._json(response)

    # ── Admin config ─────────────────────────────────────────

    async def get_admin_config(self) -> Any:
        response = await self._request(
            "GET", "/admin/config", generic_error="Failed to load configuration"
        )
        return self._json(response)

    async def update_admin_config(self, page_map: dict[str, int]) -> Any:
        response = await self._request(
            "PUT",
            "/admin/config",
            json_body={"componentPageMap": page_map},
            generic_error="Config update failed",
        )
        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError:
            return response.text

    # ── Health ───────────────────────────────────────────────

    async def health_check(self) -> Any:
        response = await self._request("GET", "/users/test", generic_error="Health check failed")
        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError:
            return response.text
