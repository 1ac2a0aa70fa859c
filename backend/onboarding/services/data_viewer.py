"""User list viewer: polls the backend for registered users.

Uses an asyncio background loop owned by the viewer (started/stopped from
the FastAPI lifespan).  Each successful poll replaces the list wholesale;
a failed or malformed poll keeps the last good list and sets `error`.

Usage:
    viewer = UserListViewer(client)
    await viewer.start()
    ...
    await viewer.stop()     # always cancels the polling task
"""

import asyncio
import logging
from datetime import datetime, timezone

from pydantic import ValidationError

from onboarding.config import settings
from onboarding.middleware.exceptions import BoundaryError
from onboarding.schemas.onboarding import UserListView, UserRecord, UserRow
from onboarding.services.api_client import BackendClient

logger = logging.getLogger("onboarding.data_viewer")

INVALID_FORMAT = "Invalid data format received"


def format_date(value: str | None) -> str:
    """`2024-01-05` → `Jan 5, 2024`; "-" when empty, raw value if unparseable."""
    if not value:
        return "-"
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return f"{parsed:%b} {parsed.day}, {parsed.year}"


def format_datetime(value: str | None) -> str:
    """`2024-01-05T14:30:00` → `Jan 5, 2024, 02:30 PM`."""
    if not value:
        return "-"
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return f"{parsed:%b} {parsed.day}, {parsed.year}, {parsed:%I:%M %p}"


class UserListViewer:
    def __init__(self, client: BackendClient, interval: float | None = None):
        self.client = client
        self.interval = settings.user_list_refresh_seconds if interval is None else interval
        self.users: list[UserRecord] = []
        self.error: str | None = None
        self.last_refreshed: datetime | None = None
        self._task: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self) -> bool:
        """Fetch the list once.  Returns True if the displayed list changed."""
        async with self._lock:
            try:
                data = await self.client.list_users()
            except BoundaryError as e:
                logger.error("Failed to load users: %s", e.message)
                self.error = f"Failed to load users: {e.detail or e.message}"
                return False

            if not isinstance(data, list):
                logger.error("User list is not a list: %r", type(data).__name__)
                self.error = INVALID_FORMAT
                return False

            try:
                users = [UserRecord.model_validate(row) for row in data]
            except ValidationError as e:
                logger.error("Malformed user record: %s", e)
                self.error = INVALID_FORMAT
                return False

            self.users = users
            self.error = None
            self.last_refreshed = datetime.now(timezone.utc)
            logger.info("Loaded %d users", len(users))
            return True

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.refresh()
            except Exception:
                logger.exception("Unhandled error while polling users")
            await asyncio.sleep(self.interval)

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._poll_loop())
        logger.info("User list polling started (every %.0fs)", self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("User list polling stopped")

    async def __aenter__(self) -> "UserListViewer":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def view(self) -> UserListView:
        return UserListView(
            users=[
                UserRow(
                    **user.model_dump(),
                    birthdate_display=format_date(user.birthdate),
                    created_display=format_datetime(user.createdAt),
                )
                for user in self.users
            ],
            error=self.error,
            last_refreshed=self.last_refreshed.isoformat() if self.last_refreshed else None,
        )
