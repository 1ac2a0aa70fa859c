"""Onboarding wizard: the calling session's 3-step registration.

Endpoints:
  GET   /api/wizard/          → current step, draft, rendered field-groups
  POST  /api/wizard/step1     → email + password (email availability gate)
  PATCH /api/wizard/fields    → update one draft field (steps 2 and 3)
  POST  /api/wizard/advance   → step 2 → 3, or submit the registration on 3
  POST  /api/wizard/reset     → start over (requires confirm=true)

Expected failures (bad email, taken email, backend down) come back as a
200 with the wizard unchanged and `error` set, the way the form shows
them inline.  Calls that are invalid for the current step are 409s.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from onboarding.deps import get_wizard
from onboarding.schemas.onboarding import (
    FieldUpdate,
    ResetRequest,
    WizardAdvanceResult,
    WizardView,
)
from onboarding.services.wizard import OnboardingWizard

router = APIRouter()


class Step1Submit(BaseModel):
    # Validated by the wizard so failures surface as an inline error
    email: str = ""
    password: str = ""


@router.get("/", response_model=WizardView)
async def get_progress(wizard: OnboardingWizard = Depends(get_wizard)):
    return wizard.view()


@router.post("/step1", response_model=WizardView)
async def submit_credentials(
    body: Step1Submit,
    wizard: OnboardingWizard = Depends(get_wizard),
):
    """Check email availability and move to step 2 if it is free."""
    await wizard.submit_step1(body.email, body.password)
    return wizard.view()


@router.patch("/fields", response_model=WizardView)
async def update_field(
    body: FieldUpdate,
    wizard: OnboardingWizard = Depends(get_wizard),
):
    await wizard.update_field(body.field, body.value)
    return wizard.view()


@router.post("/advance", response_model=WizardAdvanceResult)
async def advance(wizard: OnboardingWizard = Depends(get_wizard)):
    """Move on from step 2, or complete the registration from step 3."""
    user = await wizard.advance()
    result = WizardAdvanceResult(**wizard.view().model_dump())
    if user is not None:
        result.registered_user_id = user.id
        result.message = f"Registration Complete! User ID: {user.id}"
    return result


@router.post("/reset", response_model=WizardView)
async def reset(
    body: ResetRequest,
    wizard: OnboardingWizard = Depends(get_wizard),
):
    await wizard.reset(body.confirm)
    return wizard.view()
