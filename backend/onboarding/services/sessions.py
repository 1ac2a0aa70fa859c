"""Wizard sessions: one OnboardingWizard per browser session.

Key components:
  - _session_ctx        ContextVar holding the session id for the current request
  - set / get / clear helpers for the ContextVar
  - validate_session_id()  rejects ids that are unsafe as Redis key segments
  - WizardRegistry      lazily creates and mounts a wizard per session

Live wizards are kept in memory; their progress lives in Redis, so a
wizard evicted from the registry (or lost to a restart) resumes from the
store on its next mount.
"""

import asyncio
import logging
import re
import secrets
from collections import OrderedDict
from contextvars import ContextVar
from typing import Callable

from onboarding.middleware.exceptions import SessionContextError
from onboarding.services.api_client import BackendClient
from onboarding.services.config_resolver import ConfigResolver
from onboarding.services.progress_store import ProgressStore
from onboarding.services.wizard import OnboardingWizard

logger = logging.getLogger(__name__)

# ── Request-scoped session context ──────────────────────────

_session_ctx: ContextVar[str | None] = ContextVar("_session_ctx", default=None)


def set_current_session_id(session_id: str) -> None:
    _session_ctx.set(session_id)


def get_current_session_id() -> str:
    """Return the current session id or raise if unset."""
    session_id = _session_ctx.get()
    if session_id is None:
        raise SessionContextError()
    return session_id


def clear_session_context() -> None:
    _session_ctx.set(None)


# ── Validation ──────────────────────────────────────────────

_SESSION_RE = re.compile(r"^[A-Za-z0-9_-]{16,64}$")


def validate_session_id(session_id: str) -> str:
    if not _SESSION_RE.match(session_id):
        raise ValueError(f"Invalid session id: {session_id!r}")
    return session_id


def new_session_id() -> str:
    return secrets.token_urlsafe(24)


# ── Registry ────────────────────────────────────────────────

class WizardRegistry:
    """Live wizards keyed by session id, least recently used evicted first.

    Mounting runs outside any shared lock, so one session's slow config
    fetch never holds up another session.  Concurrent first requests for
    the same session await the same mount task.
    """

    def __init__(
        self,
        client: BackendClient,
        store_factory: Callable[[str], ProgressStore],
        max_sessions: int = 1000,
    ):
        self.client = client
        self.resolver = ConfigResolver(client)
        self.store_factory = store_factory
        self.max_sessions = max_sessions
        self._wizards: OrderedDict[str, OnboardingWizard] = OrderedDict()
        self._mounting: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._wizards)

    async def get(self, session_id: str) -> OnboardingWizard:
        wizard = self._wizards.get(session_id)
        if wizard is not None:
            self._wizards.move_to_end(session_id)
            return wizard

        task = self._mounting.get(session_id)
        if task is None:
            task = asyncio.create_task(self._mount(session_id))
            self._mounting[session_id] = task
        # Shielded so a cancelled request does not abort the shared mount
        return await asyncio.shield(task)

    async def _mount(self, session_id: str) -> OnboardingWizard:
        try:
            wizard = OnboardingWizard(
                client=self.client,
                resolver=self.resolver,
                store=self.store_factory(session_id),
            )
            await wizard.mount()
        finally:
            self._mounting.pop(session_id, None)

        self._wizards[session_id] = wizard
        logger.debug("Mounted wizard for session %s", session_id)
        while len(self._wizards) > self.max_sessions:
            evicted, _ = self._wizards.popitem(last=False)
            logger.debug("Evicted wizard for session %s", evicted)
        return wizard

    def discard(self, session_id: str) -> None:
        self._wizards.pop(session_id, None)
