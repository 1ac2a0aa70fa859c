"""Field-group rendering.

Each field-group kind maps the relevant slice of the draft to a
FieldGroupView the browser draws as inputs.  Edits come back through the
wizard's `update_field(name, value)` under the same input names, so a
group never writes to the draft directly.

Groups only carry input-type constraints; none of them is required.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

from onboarding.schemas.onboarding import (
    FieldGroupId,
    FieldGroupView,
    FieldInput,
    InputType,
    StepConfig,
    UserDraft,
)

ChangeCallback = Callable[[str, str | None], Awaitable[object]]


@dataclass(frozen=True)
class FieldGroupInfo:
    """Catalog entry shown in the admin editor."""

    group: FieldGroupId
    name: str
    icon: str
    description: str


CATALOG: dict[FieldGroupId, FieldGroupInfo] = {
    FieldGroupId.ABOUT_ME: FieldGroupInfo(
        FieldGroupId.ABOUT_ME, "About Me", "📝", "Large text area for user bio"
    ),
    FieldGroupId.ADDRESS: FieldGroupInfo(
        FieldGroupId.ADDRESS, "Address", "🏠", "Street, city, state, ZIP fields"
    ),
    FieldGroupId.BIRTHDATE: FieldGroupInfo(
        FieldGroupId.BIRTHDATE, "Birthdate", "🎂", "Date picker for birth date"
    ),
}


@dataclass
class RenderedGroup:
    """A field-group view bound to the change callback that feeds it."""

    view: FieldGroupView
    on_change: ChangeCallback

    @property
    def field_names(self) -> list[str]:
        return [i.name for i in self.view.inputs]

    async def change(self, name: str, value: str | None):
        if name not in self.field_names:
            raise KeyError(f"{self.view.group.value} has no field {name!r}")
        return await self.on_change(name, value)


def _about_me(draft: UserDraft) -> FieldGroupView:
    return FieldGroupView(
        group=FieldGroupId.ABOUT_ME,
        title="About Me",
        inputs=[
            FieldInput(
                name="aboutMe",
                label="About Me",
                input_type=InputType.TEXTAREA,
                value=draft.about_me or "",
                placeholder="Tell us about yourself...",
            ),
        ],
    )


def _address(draft: UserDraft) -> FieldGroupView:
    return FieldGroupView(
        group=FieldGroupId.ADDRESS,
        title="Address Information",
        inputs=[
            FieldInput(name="streetAddress", label="Street Address", input_type=InputType.TEXT,
                       value=draft.street_address or "", placeholder="Street Address"),
            FieldInput(name="city", label="City", input_type=InputType.TEXT,
                       value=draft.city or "", placeholder="City"),
            FieldInput(name="state", label="State", input_type=InputType.TEXT,
                       value=draft.state or "", placeholder="State"),
            FieldInput(name="zip", label="ZIP", input_type=InputType.TEXT,
                       value=draft.zip or "", placeholder="ZIP"),
        ],
    )


def _birthdate(draft: UserDraft) -> FieldGroupView:
    return FieldGroupView(
        group=FieldGroupId.BIRTHDATE,
        title="Birthdate",
        inputs=[
            FieldInput(
                name="birthdate",
                label="Birthdate",
                input_type=InputType.DATE,
                value=draft.birthdate or "",
            ),
        ],
    )


_RENDERERS: dict[FieldGroupId, Callable[[UserDraft], FieldGroupView]] = {
    FieldGroupId.ABOUT_ME: _about_me,
    FieldGroupId.ADDRESS: _address,
    FieldGroupId.BIRTHDATE: _birthdate,
}


def render_group(
    group: FieldGroupId | str, draft: UserDraft, on_change: ChangeCallback
) -> RenderedGroup | None:
    """Render one field-group, or None for an unrecognised identifier."""
    try:
        group = FieldGroupId(group)
    except ValueError:
        return None
    return RenderedGroup(view=_RENDERERS[group](draft), on_change=on_change)


def groups_for_step(config: StepConfig, step: int) -> list[FieldGroupId]:
    """Listed groups for a step, falling back to the default layout.

    Evaluated per step, so a config missing one step's entries still
    renders that step's defaults.
    """
    groups = config.groups_for(step)
    if not groups:
        groups = StepConfig.default().groups_for(step)
    return groups


def render_step(
    config: StepConfig, step: int, draft: UserDraft, on_change: ChangeCallback
) -> list[RenderedGroup]:
    return render_groups(groups_for_step(config, step), draft, on_change)


def render_groups(
    groups: Iterable[FieldGroupId | str], draft: UserDraft, on_change: ChangeCallback
) -> list[RenderedGroup]:
    rendered = []
    for group in groups:
        unit = render_group(group, draft, on_change)
        if unit is not None:
            rendered.append(unit)
    return rendered
