"""Schemas for the admin step-layout editor."""

from pydantic import BaseModel, field_validator

from onboarding.schemas.onboarding import CONFIGURABLE_STEPS, FieldGroupId


class DragItem(BaseModel):
    """Payload carried by a field-group card while it is being dragged.

    `current_step` is None for a group that is not assigned to any step.
    """
    field_group: FieldGroupId
    current_step: int | None = None


class DropRequest(BaseModel):
    item: DragItem
    target_step: int

    @field_validator("target_step")
    @classmethod
    def _configurable(cls, v: int) -> int:
        if v not in CONFIGURABLE_STEPS:
            raise ValueError(f"Only steps {', '.join(str(int(s)) for s in CONFIGURABLE_STEPS)} are configurable")
        return v


class FieldGroupCard(BaseModel):
    key: FieldGroupId
    name: str
    icon: str
    description: str


class AdminStepColumn(BaseModel):
    step: int
    groups: list[FieldGroupCard]


class AdminConfigView(BaseModel):
    steps: list[AdminStepColumn]
    unassigned: list[FieldGroupCard] = []
    can_save: bool
    saving: bool = False


class SaveResult(BaseModel):
    ok: bool
    message: str
