"""Durable wizard progress for resuming an interrupted session.

Two entries per session namespace, mirroring what a browser would keep in
local storage:

    {namespace}:{session}:user_data     JSON-serialised UserDraft
    {namespace}:{session}:current_step  step number as a string

Unreadable entries are deleted on restore so a corrupt payload never
survives to the next mount.
"""

import json
import logging
from abc import ABC, abstractmethod

import redis.asyncio as redis
from pydantic import ValidationError

from onboarding.config import settings
from onboarding.middleware.exceptions import OnboardingException
from onboarding.schemas.onboarding import UserDraft, WizardStep

logger = logging.getLogger(__name__)


class ProgressStoreError(OnboardingException):
    """The durable store could not be reached."""

    def __init__(self, message: str):
        super().__init__(message=message, status_code=503, error_code="PROGRESS_STORE_UNAVAILABLE")


class ProgressStore(ABC):
    """Serialisation and restore rules; subclasses provide raw key access."""

    def __init__(self, session_id: str, namespace: str | None = None):
        prefix = f"{namespace or settings.progress_namespace}:{session_id}"
        self.session_id = session_id
        self.data_key = f"{prefix}:user_data"
        self.step_key = f"{prefix}:current_step"

    @abstractmethod
    async def _read(self) -> tuple[str | None, str | None]:
        """Return (user_data, current_step) raw values."""

    @abstractmethod
    async def _write(self, user_data: str, current_step: str) -> None:
        ...

    @abstractmethod
    async def _erase(self) -> None:
        ...

    async def save(self, draft: UserDraft, step: int) -> None:
        """Overwrite the stored progress with this draft and step."""
        await self._write(json.dumps(draft.dump()), str(int(step)))
        logger.debug("Progress saved for session %s at step %s", self.session_id, step)

    async def restore(self) -> tuple[UserDraft, WizardStep] | None:
        """Stored (draft, step), or None if absent, corrupt or email-less."""
        saved_data, saved_step = await self._read()
        if not saved_data or not saved_step:
            logger.debug("No saved progress for session %s", self.session_id)
            return None

        try:
            draft = UserDraft.model_validate(json.loads(saved_data))
            step = WizardStep(int(saved_step))
        except (ValueError, ValidationError) as e:
            # json.JSONDecodeError is a ValueError
            logger.error("Error restoring progress for session %s: %s", self.session_id, e)
            await self._erase()
            return None

        if not draft.has_email:
            logger.info("Discarding saved progress without email for session %s", self.session_id)
            return None

        logger.info("Progress restored for session %s at step %s", self.session_id, int(step))
        return draft, step

    async def clear(self) -> None:
        await self._erase()
        logger.debug("Progress cleared for session %s", self.session_id)


class RedisProgressStore(ProgressStore):
    def __init__(
        self,
        client: redis.Redis,
        session_id: str,
        namespace: str | None = None,
        ttl: int | None = None,
    ):
        super().__init__(session_id, namespace)
        self.client = client
        self.ttl = settings.progress_ttl_seconds if ttl is None else ttl

    async def _read(self) -> tuple[str | None, str | None]:
        try:
            user_data, current_step = await self.client.mget(self.data_key, self.step_key)
        except redis.RedisError as e:
            raise ProgressStoreError(f"Could not read progress: {e}") from e
        return user_data, current_step

    async def _write(self, user_data: str, current_step: str) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.set(self.data_key, user_data, ex=self.ttl or None)
                pipe.set(self.step_key, current_step, ex=self.ttl or None)
                await pipe.execute()
        except redis.RedisError as e:
            raise ProgressStoreError(f"Could not save progress: {e}") from e

    async def _erase(self) -> None:
        try:
            await self.client.delete(self.data_key, self.step_key)
        except redis.RedisError as e:
            raise ProgressStoreError(f"Could not clear progress: {e}") from e


class InMemoryProgressStore(ProgressStore):
    """Process-local store for tests and single-process development."""

    def __init__(self, session_id: str = "local", namespace: str | None = None):
        super().__init__(session_id, namespace)
        self.entries: dict[str, str] = {}
        self.writes = 0

    async def _read(self) -> tuple[str | None, str | None]:
        return self.entries.get(self.data_key), self.entries.get(self.step_key)

    async def _write(self, user_data: str, current_step: str) -> None:
        self.entries[self.data_key] = user_data
        self.entries[self.step_key] = current_step
        self.writes += 1

    async def _erase(self) -> None:
        self.entries.pop(self.data_key, None)
        self.entries.pop(self.step_key, None)
