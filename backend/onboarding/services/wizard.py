"""Onboarding wizard: 3-step registration with save/resume.

States:
  1. Credentials   email + password, gated on the backend's email check
  2. Profile       field-groups configured for step 2
  3. Review        field-groups configured for step 3, then submit

Design:
  - Steps only move forward; a successful submit (or a confirmed reset)
    returns to step 1 with an empty draft.
  - Every boundary call is awaited before the state changes.  A `loading`
    flag makes a second submit/advance while one is pending a no-op.
  - Progress is written to the ProgressStore after every draft or step
    change once the draft has an email and the wizard is past step 1.
  - Expected failures (validation, email conflict, backend errors) leave
    the wizard where it was and set `error` for display; the draft is
    never discarded by a failure.
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Union

from pydantic import ValidationError

from onboarding.middleware.exceptions import (
    BoundaryError,
    EmailConflictError,
    InvalidTransitionError,
    ValidationFailedError,
)
from onboarding.schemas.onboarding import (
    CONFIGURABLE_STEPS,
    EDITABLE_FIELDS,
    Credentials,
    RegisteredUser,
    RegistrationPayload,
    StepConfig,
    StepIndicator,
    UserDraft,
    WizardStep,
    WizardView,
)
from onboarding.schemas.validators import validate_iso_date
from onboarding.services.api_client import BackendClient
from onboarding.services.config_resolver import ConfigResolver
from onboarding.services.field_groups import RenderedGroup, render_step
from onboarding.services.progress_store import ProgressStore, ProgressStoreError

logger = logging.getLogger(__name__)

EMAIL_CHECK_FAILED = "Failed to validate email. Please try again."
REGISTRATION_FAILED = "Registration failed. Please try again."
RESET_PROMPT = "Start over? All progress will be lost."

Confirmation = Union[bool, Callable[[str], Union[bool, Awaitable[bool]]]]


def _first_error(exc: ValidationError) -> str:
    msg = exc.errors()[0]["msg"]
    return msg.removeprefix("Value error, ")


class OnboardingWizard:
    """One browser session's wizard.  Not safe to share between sessions."""

    def __init__(
        self,
        client: BackendClient,
        resolver: ConfigResolver,
        store: ProgressStore,
    ):
        self.client = client
        self.resolver = resolver
        self.store = store

        self.current_step: WizardStep = WizardStep.CREDENTIALS
        self.draft = UserDraft()
        # Empty until mount; rendering falls back to the default layout
        self.config = StepConfig()
        self.error: str | None = None
        self.loading = False
        self.mounted = False
        # Last email typed on step 1, kept for the form after a failed check
        self.entered_email: str | None = None
        self.last_registered: RegisteredUser | None = None

    # ── Mount ────────────────────────────────────────────────

    async def mount(self) -> None:
        """Load the step layout and any saved progress, independently."""
        results = await asyncio.gather(
            self._load_config(),
            self._restore_progress(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Wizard mount task failed: %s", result)
        self.mounted = True

    async def _load_config(self) -> None:
        self.config = await self.resolver.fetch()

    async def _restore_progress(self) -> None:
        try:
            restored = await self.store.restore()
        except ProgressStoreError as e:
            logger.warning("Could not restore progress, starting fresh: %s", e)
            return
        if restored is not None:
            self.draft, self.current_step = restored

    # ── Transitions ──────────────────────────────────────────

    async def submit_step1(self, email: str, password: str) -> bool:
        """Check the email with the backend and move to step 2 if it is free.

        Returns True when the wizard advanced.
        """
        if self.loading:
            logger.debug("Ignoring step 1 submit while another is in flight")
            return False
        if self.current_step != WizardStep.CREDENTIALS:
            raise InvalidTransitionError("Credentials can only be submitted on step 1")

        self.entered_email = email
        self.error = None
        try:
            creds = Credentials(email=email, password=password)
        except ValidationError as e:
            self.error = _first_error(e)
            return False

        self.loading = True
        try:
            try:
                exists = await self.client.check_email_exists(creds.email)
            except BoundaryError as e:
                logger.error("Step 1 email check failed for %s: %s", creds.email, e.message)
                self.error = EMAIL_CHECK_FAILED
                return False

            if exists:
                self.error = EmailConflictError(creds.email).message
                return False

            self.draft = UserDraft(email=creds.email, password=creds.password)
            self.current_step = WizardStep.PROFILE
            logger.info("Moving to step 2 for %s", creds.email)
            await self._autosave()
            return True
        finally:
            self.loading = False

    async def update_field(self, field: str, value: str | None) -> UserDraft:
        """Merge one field into the draft (last write wins) and autosave."""
        if self.current_step not in CONFIGURABLE_STEPS:
            raise InvalidTransitionError("Fields can only be edited on steps 2 and 3")
        if field not in EDITABLE_FIELDS:
            raise ValidationFailedError(f"Unknown field: {field}")
        if field == "birthdate":
            try:
                value = validate_iso_date(value)
            except ValueError as e:
                raise ValidationFailedError(str(e))

        self.draft = self.draft.merged(field, value)
        logger.debug("Field %r changed", field)
        await self._autosave()
        return self.draft

    async def advance(self) -> RegisteredUser | None:
        """Step 2 → 3 unconditionally; on step 3, submit the registration."""
        if self.loading:
            logger.debug("Ignoring advance while a submission is in flight")
            return None

        if self.current_step == WizardStep.PROFILE:
            self.loading = True
            try:
                self.current_step = WizardStep.REVIEW
                self.error = None
                logger.info("Moving from step 2 to step 3")
                await self._autosave()
            finally:
                self.loading = False
            return None
        if self.current_step == WizardStep.REVIEW:
            return await self.submit_final()

        raise InvalidTransitionError("Submit your email and password first")

    async def submit_final(self) -> RegisteredUser | None:
        """Register the full draft.  Returns the created user on success."""
        if self.loading:
            logger.debug("Ignoring duplicate registration submit")
            return None
        if self.current_step != WizardStep.REVIEW:
            raise InvalidTransitionError("Registration can only be completed from step 3")

        self.loading = True
        self.error = None
        try:
            payload = RegistrationPayload.from_draft(self.draft)
            try:
                user = await self.client.register_complete(payload)
            except BoundaryError as e:
                logger.error("Registration failed for %s: %s", payload.email, e.message)
                self.error = e.detail or REGISTRATION_FAILED
                return None

            self.draft = UserDraft()
            self.current_step = WizardStep.CREDENTIALS
            self.entered_email = None
            self.last_registered = user
            await self._clear_progress()
            logger.info("Registration complete, user id %s", user.id)
            return user
        finally:
            self.loading = False

    async def reset(self, confirm: Confirmation) -> bool:
        """Start over after an explicit yes.  No-op on step 1 or on a no."""
        if self.current_step == WizardStep.CREDENTIALS:
            return False

        decision = confirm(RESET_PROMPT) if callable(confirm) else confirm
        if inspect.isawaitable(decision):
            decision = await decision
        if not decision:
            return False

        await self._clear_progress()
        self.draft = UserDraft()
        self.current_step = WizardStep.CREDENTIALS
        self.error = None
        self.entered_email = None
        logger.info("Progress cleared by user")
        return True

    # ── Persistence ──────────────────────────────────────────

    async def _autosave(self) -> None:
        if not self.draft.has_email or self.current_step <= WizardStep.CREDENTIALS:
            return
        try:
            await self.store.save(self.draft, self.current_step)
        except ProgressStoreError as e:
            # The in-memory draft is still authoritative for this session
            logger.warning("Auto-save failed: %s", e)

    async def _clear_progress(self) -> None:
        try:
            await self.store.clear()
        except ProgressStoreError as e:
            logger.warning("Could not clear saved progress: %s", e)

    # ── Rendering ────────────────────────────────────────────

    def render(self, step: int | None = None) -> list[RenderedGroup]:
        """Field-groups for a configurable step (default: the current one)."""
        step = self.current_step if step is None else step
        if step not in CONFIGURABLE_STEPS:
            return []
        return render_step(self.config, step, self.draft, self.update_field)

    def view(self) -> WizardView:
        return WizardView(
            current_step=int(self.current_step),
            steps=[
                StepIndicator(step=int(s), reached=self.current_step >= s)
                for s in WizardStep
            ],
            draft=self.draft.public(),
            fields=[unit.view for unit in self.render()],
            error=self.error,
            loading=self.loading,
            entered_email=self.entered_email if self.current_step == WizardStep.CREDENTIALS else None,
        )
