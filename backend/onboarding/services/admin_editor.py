"""Admin editor for the step layout.

Holds its own copy of the StepConfig; edits are not pushed to wizards
that are already open, they pick the new layout up on their next mount.

Rules:
  - `move()` removes a group from every step before appending it to the
    target, so a group is never in two steps and never lost by a move.
  - A drop onto the step the card came from does nothing.
  - `save()` refuses to persist while either configurable step is empty.
"""

import logging

from onboarding.middleware.exceptions import BoundaryError, ValidationFailedError
from onboarding.schemas.admin import (
    AdminConfigView,
    AdminStepColumn,
    DragItem,
    FieldGroupCard,
    SaveResult,
)
from onboarding.schemas.onboarding import CONFIGURABLE_STEPS, FieldGroupId, StepConfig
from onboarding.services.config_resolver import ConfigResolver
from onboarding.services.field_groups import CATALOG

logger = logging.getLogger(__name__)

EMPTY_STEP_ERROR = "Each step must have at least one field-group!"
SAVE_OK = "Configuration saved successfully!"
SAVE_FAILED = "Failed to save configuration"


def _card(group: FieldGroupId) -> FieldGroupCard:
    info = CATALOG[group]
    return FieldGroupCard(key=group, name=info.name, icon=info.icon, description=info.description)


class AdminConfigEditor:
    def __init__(self, resolver: ConfigResolver):
        self.resolver = resolver
        self.config = StepConfig(steps={int(s): [] for s in CONFIGURABLE_STEPS})
        self.saving = False
        self.loaded = False

    async def load(self) -> StepConfig:
        """Replace the working copy with the resolver's current layout."""
        fetched = await self.resolver.fetch()
        self.config = StepConfig(
            steps={int(s): fetched.groups_for(s) for s in CONFIGURABLE_STEPS}
        )
        self.loaded = True
        return self.config

    # ── Editing ──────────────────────────────────────────────

    def step_of(self, group: FieldGroupId) -> int | None:
        for step in CONFIGURABLE_STEPS:
            if group in self.config.groups_for(step):
                return int(step)
        return None

    def move(self, group: FieldGroupId | str, target_step: int) -> StepConfig:
        if target_step not in CONFIGURABLE_STEPS:
            raise ValidationFailedError(f"Step {target_step} is not configurable")
        group = FieldGroupId(group)

        steps = {
            int(step): [g for g in groups if g != group]
            for step, groups in self.config.steps.items()
        }
        steps.setdefault(int(target_step), []).append(group)
        self.config = StepConfig(steps=steps)
        logger.debug("Moved %s to step %s", group.value, target_step)
        return self.config

    def pick_up(self, group: FieldGroupId | str) -> DragItem:
        group = FieldGroupId(group)
        return DragItem(field_group=group, current_step=self.step_of(group))

    def can_drop(self, item: DragItem, target_step: int) -> bool:
        return target_step in CONFIGURABLE_STEPS and item.current_step != target_step

    def drop(self, item: DragItem, target_step: int) -> bool:
        """Apply a drag-and-drop; False when the drop target refused it."""
        if not self.can_drop(item, target_step):
            return False
        self.move(item.field_group, target_step)
        return True

    # ── Saving ───────────────────────────────────────────────

    @property
    def is_valid(self) -> bool:
        return all(self.config.groups_for(step) for step in CONFIGURABLE_STEPS)

    @property
    def can_save(self) -> bool:
        return self.is_valid and not self.saving

    async def save(self) -> SaveResult | None:
        """Persist the layout.  None means a save was already in flight."""
        if self.saving:
            logger.debug("Ignoring save while a previous save is in flight")
            return None
        if not self.is_valid:
            return SaveResult(ok=False, message=EMPTY_STEP_ERROR)

        self.saving = True
        try:
            await self.resolver.persist(self.config)
        except BoundaryError as e:
            logger.error("Admin config save failed: %s", e.message)
            message = f"{SAVE_FAILED}: {e.detail}" if e.detail else SAVE_FAILED
            return SaveResult(ok=False, message=message)
        finally:
            self.saving = False

        return SaveResult(ok=True, message=SAVE_OK)

    def view(self) -> AdminConfigView:
        assigned = {g for step in CONFIGURABLE_STEPS for g in self.config.groups_for(step)}
        return AdminConfigView(
            steps=[
                AdminStepColumn(step=int(step), groups=[_card(g) for g in self.config.groups_for(step)])
                for step in CONFIGURABLE_STEPS
            ],
            unassigned=[_card(g) for g in FieldGroupId if g not in assigned],
            can_save=self.can_save,
            saving=self.saving,
        )
