"""Wizard state machine tests."""

import asyncio
import json

import pytest

from onboarding.middleware.exceptions import InvalidTransitionError, ValidationFailedError
from onboarding.schemas.onboarding import FieldGroupId, UserDraft, WizardStep
from onboarding.services.progress_store import InMemoryProgressStore, ProgressStoreError
from onboarding.services.wizard import (
    EMAIL_CHECK_FAILED,
    REGISTRATION_FAILED,
    RESET_PROMPT,
    OnboardingWizard,
)

from conftest import TEST_SESSION_ID


class SlowProgressStore(InMemoryProgressStore):
    """Suspends on every write, like a round trip to Redis."""

    async def _write(self, user_data: str, current_step: str) -> None:
        await asyncio.sleep(0.05)
        await super()._write(user_data, current_step)


async def _to_step(wizard, step: int, email: str = "new@x.com"):
    await wizard.submit_step1(email, "secret1")
    if step == 3:
        await wizard.advance()
    assert wizard.current_step == step


@pytest.mark.wizard
@pytest.mark.asyncio
class TestMount:
    async def test_fresh_start(self, wizard):
        await wizard.mount()
        assert wizard.mounted
        assert wizard.current_step == WizardStep.CREDENTIALS
        assert wizard.draft == UserDraft()
        assert wizard.error is None

    async def test_default_layout_when_config_fails(self, wizard, fake_backend):
        fake_backend.fail.add("config")
        await wizard.mount()

        assert [u.view.group for u in wizard.render(2)] == [FieldGroupId.ABOUT_ME, FieldGroupId.ADDRESS]
        assert [u.view.group for u in wizard.render(3)] == [FieldGroupId.BIRTHDATE]
        assert wizard.error is None

    async def test_remote_layout_is_used(self, wizard, fake_backend):
        fake_backend.config = {"2": ["BIRTHDATE"], "3": ["ADDRESS", "ABOUT_ME"]}
        await wizard.mount()

        assert [u.view.group for u in wizard.render(2)] == [FieldGroupId.BIRTHDATE]
        assert [u.view.group for u in wizard.render(3)] == [FieldGroupId.ADDRESS, FieldGroupId.ABOUT_ME]

    async def test_missing_step_falls_back_per_step(self, wizard, fake_backend):
        fake_backend.config = {"2": ["BIRTHDATE"]}
        await wizard.mount()

        assert [u.view.group for u in wizard.render(2)] == [FieldGroupId.BIRTHDATE]
        assert [u.view.group for u in wizard.render(3)] == [FieldGroupId.BIRTHDATE]

    async def test_resumes_saved_progress(self, wizard, progress_store):
        await progress_store.save(UserDraft(email="a@b.com", about_me="hi"), 3)
        await wizard.mount()

        assert wizard.current_step == WizardStep.REVIEW
        assert wizard.draft.email == "a@b.com"
        assert wizard.draft.about_me == "hi"

    async def test_ignores_progress_without_email(self, wizard, progress_store):
        progress_store.entries[progress_store.data_key] = json.dumps({"aboutMe": "hi"})
        progress_store.entries[progress_store.step_key] = "2"
        await wizard.mount()

        assert wizard.current_step == WizardStep.CREDENTIALS
        assert wizard.draft == UserDraft()

    async def test_restore_failure_does_not_block_config(self, wizard, progress_store, fake_backend, monkeypatch):
        fake_backend.config = {"2": ["ADDRESS"], "3": ["ABOUT_ME", "BIRTHDATE"]}

        async def broken_restore():
            raise ProgressStoreError("redis down")

        monkeypatch.setattr(progress_store, "restore", broken_restore)
        await wizard.mount()

        assert wizard.current_step == WizardStep.CREDENTIALS
        assert wizard.config.groups_for(2) == [FieldGroupId.ADDRESS]

    async def test_config_failure_does_not_block_restore(self, wizard, progress_store, fake_backend):
        fake_backend.timeout.add("config")
        await progress_store.save(UserDraft(email="a@b.com"), 2)
        await wizard.mount()

        assert wizard.current_step == WizardStep.PROFILE
        assert wizard.draft.email == "a@b.com"


@pytest.mark.wizard
@pytest.mark.asyncio
class TestStep1:
    async def test_available_email_advances(self, wizard, progress_store):
        assert await wizard.submit_step1("new@x.com", "secret1") is True

        assert wizard.current_step == WizardStep.PROFILE
        assert wizard.draft == UserDraft(email="new@x.com", password="secret1")
        assert wizard.error is None
        assert wizard.loading is False
        # Past step 1 with an email: progress is persisted
        assert await progress_store.restore() == (wizard.draft, WizardStep.PROFILE)

    async def test_email_conflict_stays_on_step1(self, wizard, fake_backend, progress_store):
        fake_backend.existing_emails.add("taken@x.com")

        assert await wizard.submit_step1("taken@x.com", "secret1") is False

        assert wizard.current_step == WizardStep.CREDENTIALS
        assert "already registered" in wizard.error
        assert wizard.draft == UserDraft()
        assert wizard.entered_email == "taken@x.com"
        assert progress_store.writes == 0

    async def test_check_failure_is_distinct_from_conflict(self, wizard, fake_backend):
        fake_backend.fail.add("email")

        assert await wizard.submit_step1("new@x.com", "secret1") is False

        assert wizard.current_step == WizardStep.CREDENTIALS
        assert wizard.error == EMAIL_CHECK_FAILED
        assert "already registered" not in wizard.error
        assert wizard.draft == UserDraft()

    async def test_check_timeout(self, wizard, fake_backend):
        fake_backend.timeout.add("email")
        await wizard.submit_step1("new@x.com", "secret1")
        assert wizard.error == EMAIL_CHECK_FAILED
        assert wizard.loading is False

    @pytest.mark.parametrize(
        "email,password,message",
        [
            ("", "secret1", "Email is required"),
            ("not-an-email", "secret1", "Invalid email address format"),
            ("new@x.com", "short", "at least 6 characters"),
        ],
    )
    async def test_invalid_input_never_reaches_backend(self, wizard, fake_backend, email, password, message):
        assert await wizard.submit_step1(email, password) is False

        assert message in wizard.error
        assert wizard.current_step == WizardStep.CREDENTIALS
        assert fake_backend.count("GET", "/users/email/") == 0

    async def test_not_allowed_after_step1(self, wizard):
        await _to_step(wizard, 2)
        with pytest.raises(InvalidTransitionError):
            await wizard.submit_step1("other@x.com", "secret1")
        assert wizard.draft.email == "new@x.com"

    async def test_concurrent_step1_checks_email_once(self, wizard, fake_backend):
        fake_backend.email_delay = 0.05

        results = await asyncio.gather(
            wizard.submit_step1("new@x.com", "secret1"),
            wizard.submit_step1("new@x.com", "secret1"),
        )

        assert fake_backend.count("GET", "/users/email/") == 1
        assert sorted(results) == [False, True]
        assert wizard.current_step == WizardStep.PROFILE

    async def test_email_checked_as_typed(self, wizard, fake_backend):
        fake_backend.existing_emails.add("Taken@X.com")

        assert await wizard.submit_step1(" Taken@X.com ", "secret1") is False

        assert fake_backend.calls[-1] == ("GET", "/users/email/Taken@X.com")
        assert "already registered" in wizard.error


@pytest.mark.wizard
@pytest.mark.asyncio
class TestFields:
    async def test_update_merges_and_persists(self, wizard, progress_store):
        await _to_step(wizard, 2)

        await wizard.update_field("aboutMe", "hello")
        await wizard.update_field("city", "Austin")
        await wizard.update_field("aboutMe", "hello again")

        assert wizard.draft.about_me == "hello again"
        assert wizard.draft.city == "Austin"
        restored, step = await progress_store.restore()
        assert restored.about_me == "hello again"
        assert restored.city == "Austin"
        assert step == WizardStep.PROFILE

    async def test_update_on_step1_rejected(self, wizard):
        with pytest.raises(InvalidTransitionError):
            await wizard.update_field("aboutMe", "hello")

    async def test_unknown_field_rejected(self, wizard):
        await _to_step(wizard, 2)
        with pytest.raises(ValidationFailedError):
            await wizard.update_field("password", "hijack")
        assert wizard.draft.password == "secret1"

    async def test_birthdate_must_be_iso(self, wizard):
        await _to_step(wizard, 2)
        with pytest.raises(ValidationFailedError):
            await wizard.update_field("birthdate", "01/02/1990")

        await wizard.update_field("birthdate", "1990-01-02")
        assert wizard.draft.birthdate == "1990-01-02"

    async def test_rendered_group_writes_through_update_field(self, wizard):
        await wizard.mount()
        await _to_step(wizard, 2)

        address = next(u for u in wizard.render() if u.view.group == FieldGroupId.ADDRESS)
        await address.change("zip", "73301")

        assert wizard.draft.zip == "73301"
        rerendered = next(u for u in wizard.render() if u.view.group == FieldGroupId.ADDRESS)
        assert {i.name: i.value for i in rerendered.view.inputs}["zip"] == "73301"


@pytest.mark.wizard
@pytest.mark.asyncio
class TestSubmission:
    async def test_happy_path_end_to_end(self, wizard, fake_backend, progress_store):
        await wizard.mount()
        assert await wizard.submit_step1("new@x.com", "secret1")
        assert wizard.current_step == WizardStep.PROFILE

        await wizard.update_field("aboutMe", "hello")
        assert wizard.draft.about_me == "hello"
        assert (await progress_store.restore())[0].about_me == "hello"

        assert await wizard.advance() is None
        assert wizard.current_step == WizardStep.REVIEW

        user = await wizard.submit_final()

        assert user.id == 42
        assert wizard.current_step == WizardStep.CREDENTIALS
        assert wizard.draft == UserDraft()
        assert await progress_store.restore() is None
        assert progress_store.entries == {}

    async def test_payload_sends_every_key(self, wizard, fake_backend):
        await _to_step(wizard, 3)
        await wizard.update_field("city", "Austin")
        await wizard.submit_final()

        assert fake_backend.registrations == [{
            "email": "new@x.com",
            "password": "secret1",
            "aboutMe": None,
            "streetAddress": None,
            "city": "Austin",
            "state": None,
            "zip": None,
            "birthdate": None,
        }]

    async def test_advance_on_step3_submits(self, wizard):
        await _to_step(wizard, 3)
        user = await wizard.advance()
        assert user is not None and user.id == 42
        assert wizard.current_step == WizardStep.CREDENTIALS

    async def test_failure_message_verbatim(self, wizard, fake_backend, progress_store):
        fake_backend.register_error = (400, {"message": "Zip code rejected"})
        await _to_step(wizard, 3)
        await wizard.update_field("zip", "bad")

        assert await wizard.submit_final() is None

        assert wizard.current_step == WizardStep.REVIEW
        assert wizard.error == "Zip code rejected"
        assert wizard.draft.zip == "bad"
        assert (await progress_store.restore())[0].zip == "bad"

    async def test_failure_generic_message(self, wizard, fake_backend):
        fake_backend.timeout.add("register")
        await _to_step(wizard, 3)

        assert await wizard.submit_final() is None
        assert wizard.error == REGISTRATION_FAILED
        assert wizard.draft.email == "new@x.com"

    async def test_retry_after_failure(self, wizard, fake_backend):
        fake_backend.fail.add("register")
        await _to_step(wizard, 3)
        await wizard.submit_final()
        assert wizard.current_step == WizardStep.REVIEW

        fake_backend.fail.clear()
        user = await wizard.submit_final()
        assert user.id == 42
        assert wizard.error is None

    async def test_concurrent_submits_hit_backend_once(self, wizard, fake_backend):
        fake_backend.register_delay = 0.05
        await _to_step(wizard, 3)

        results = await asyncio.gather(wizard.submit_final(), wizard.submit_final())

        assert fake_backend.count("POST", "/users/register-complete") == 1
        assert sum(r is not None for r in results) == 1

    async def test_double_advance_from_step2_stops_on_step3(self, backend_client, resolver, fake_backend):
        wizard = OnboardingWizard(backend_client, resolver, SlowProgressStore(TEST_SESSION_ID))
        await _to_step(wizard, 2)

        await asyncio.gather(wizard.advance(), wizard.advance())

        assert wizard.current_step == WizardStep.REVIEW
        assert fake_backend.registrations == []
        assert wizard.loading is False

    async def test_submit_outside_step3_rejected(self, wizard):
        await _to_step(wizard, 2)
        with pytest.raises(InvalidTransitionError):
            await wizard.submit_final()

    async def test_advance_on_step1_rejected(self, wizard):
        with pytest.raises(InvalidTransitionError):
            await wizard.advance()


@pytest.mark.wizard
@pytest.mark.asyncio
class TestReset:
    async def test_confirmed_reset(self, wizard, progress_store):
        await _to_step(wizard, 3)
        prompts = []

        def confirm(prompt):
            prompts.append(prompt)
            return True

        assert await wizard.reset(confirm) is True
        assert prompts == [RESET_PROMPT]
        assert wizard.current_step == WizardStep.CREDENTIALS
        assert wizard.draft == UserDraft()
        assert progress_store.entries == {}

    async def test_declined_reset_is_noop(self, wizard, progress_store):
        await _to_step(wizard, 2)
        await wizard.update_field("aboutMe", "keep me")

        assert await wizard.reset(lambda prompt: False) is False
        assert wizard.current_step == WizardStep.PROFILE
        assert wizard.draft.about_me == "keep me"
        assert (await progress_store.restore())[0].about_me == "keep me"

    async def test_async_confirmation(self, wizard):
        await _to_step(wizard, 2)

        async def confirm(prompt):
            return True

        assert await wizard.reset(confirm) is True

    async def test_reset_unavailable_on_step1(self, wizard):
        assert await wizard.reset(True) is False


@pytest.mark.wizard
@pytest.mark.asyncio
class TestAutosave:
    async def test_no_writes_on_step1(self, wizard, fake_backend, progress_store):
        fake_backend.existing_emails.add("taken@x.com")
        await wizard.mount()
        await wizard.submit_step1("taken@x.com", "secret1")
        assert progress_store.writes == 0

    async def test_store_failure_does_not_break_wizard(self, wizard, progress_store, monkeypatch):
        async def broken_save(draft, step):
            raise ProgressStoreError("redis down")

        monkeypatch.setattr(progress_store, "save", broken_save)
        await _to_step(wizard, 2)
        await wizard.update_field("aboutMe", "still here")

        assert wizard.draft.about_me == "still here"
        assert wizard.error is None

    async def test_view_hides_password(self, wizard):
        await _to_step(wizard, 2)
        view = wizard.view()

        assert "password" not in view.draft
        assert view.draft["email"] == "new@x.com"
        assert [s.reached for s in view.steps] == [True, True, False]
        assert [f.group for f in view.fields] == [FieldGroupId.ABOUT_ME, FieldGroupId.ADDRESS]
