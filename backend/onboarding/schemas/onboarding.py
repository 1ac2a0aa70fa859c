"""Pydantic schemas for the 3-step onboarding wizard.

Step 1 collects credentials; steps 2 and 3 show whichever field-groups the
admin layout assigns to them.  Every draft field except the credentials is
optional so partial saves always validate.
"""

from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from onboarding.schemas.validators import validate_email, validate_password


# ── Identifiers ─────────────────────────────────────────────

class FieldGroupId(str, Enum):
    ABOUT_ME = "ABOUT_ME"
    ADDRESS = "ADDRESS"
    BIRTHDATE = "BIRTHDATE"


class WizardStep(IntEnum):
    CREDENTIALS = 1
    PROFILE = 2
    REVIEW = 3


CONFIGURABLE_STEPS: tuple[WizardStep, ...] = (WizardStep.PROFILE, WizardStep.REVIEW)


# ── Step layout ─────────────────────────────────────────────

class StepConfig(BaseModel):
    """Ordered field-groups per configurable step.

    The read path is lenient: unknown identifiers are dropped and missing
    steps come back empty.  Non-emptiness is only enforced by the admin
    editor before it persists.
    """

    steps: dict[int, list[FieldGroupId]] = Field(default_factory=dict)

    @classmethod
    def default(cls) -> "StepConfig":
        return cls(steps={
            WizardStep.PROFILE: [FieldGroupId.ABOUT_ME, FieldGroupId.ADDRESS],
            WizardStep.REVIEW: [FieldGroupId.BIRTHDATE],
        })

    @classmethod
    def from_remote(cls, payload: dict) -> "StepConfig":
        """Parse the backend's `{"2": [...], "3": [...]}` layout."""
        if not isinstance(payload, dict):
            raise ValueError(f"Step config must be an object, got {type(payload).__name__}")

        known = {g.value for g in FieldGroupId}
        steps: dict[int, list[FieldGroupId]] = {}
        for key, groups in payload.items():
            try:
                step = int(key)
            except (TypeError, ValueError):
                continue
            if step not in CONFIGURABLE_STEPS or not isinstance(groups, list):
                continue
            steps[step] = [FieldGroupId(g) for g in groups if g in known]
        return cls(steps=steps)

    def groups_for(self, step: int) -> list[FieldGroupId]:
        return list(self.steps.get(int(step), []))

    def to_page_map(self) -> dict[str, int]:
        """Reverse mapping field-group → step, the shape the backend stores."""
        page_map: dict[str, int] = {}
        for step, groups in sorted(self.steps.items()):
            for group in groups:
                page_map[group.value] = int(step)
        return page_map


# ── Draft / submission ──────────────────────────────────────

class UserDraft(BaseModel):
    """In-progress registration record built up across steps."""

    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    password: str | None = None
    about_me: str | None = Field(default=None, alias="aboutMe")
    street_address: str | None = Field(default=None, alias="streetAddress")
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    birthdate: str | None = None

    @property
    def has_email(self) -> bool:
        return bool(self.email)

    def merged(self, field: str, value: str | None) -> "UserDraft":
        """Return a copy with one editable field replaced."""
        attr = EDITABLE_FIELDS[field]
        return self.model_copy(update={attr: value})

    def dump(self) -> dict:
        """Serialise with the backend's camelCase keys, unset fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)

    def public(self) -> dict:
        """Draft as shown back to the browser (never includes the password)."""
        return self.model_dump(by_alias=True, exclude={"password"})


# camelCase field name → UserDraft attribute, for the fields field-groups edit
EDITABLE_FIELDS: dict[str, str] = {
    "aboutMe": "about_me",
    "streetAddress": "street_address",
    "city": "city",
    "state": "state",
    "zip": "zip",
    "birthdate": "birthdate",
}


class Credentials(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return validate_email(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return validate_password(v)


class RegistrationPayload(BaseModel):
    """Full submission body; every optional key is sent, null when unset."""

    email: str
    password: str
    aboutMe: str | None = None
    streetAddress: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    birthdate: str | None = None

    @classmethod
    def from_draft(cls, draft: UserDraft) -> "RegistrationPayload":
        return cls(
            email=draft.email or "",
            password=draft.password or "",
            aboutMe=draft.about_me or None,
            streetAddress=draft.street_address or None,
            city=draft.city or None,
            state=draft.state or None,
            zip=draft.zip or None,
            birthdate=draft.birthdate or None,
        )


class RegisteredUser(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int | str
    email: str | None = None


class UserRecord(BaseModel):
    """One row of the data viewer."""

    model_config = ConfigDict(extra="allow")

    id: int | str | None = None
    email: str | None = None
    aboutMe: str | None = None
    streetAddress: str | None = None
    city: str | None = None
    state: str | None = None
    zip: str | None = None
    birthdate: str | None = None
    createdAt: str | None = None


# ── Rendered field-groups ───────────────────────────────────

class InputType(str, Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    DATE = "date"


class FieldInput(BaseModel):
    name: str
    label: str
    input_type: InputType
    value: str = ""
    placeholder: str | None = None


class FieldGroupView(BaseModel):
    group: FieldGroupId
    title: str
    inputs: list[FieldInput]


# ── HTTP views ──────────────────────────────────────────────

class StepIndicator(BaseModel):
    step: int
    reached: bool


class WizardView(BaseModel):
    current_step: int
    steps: list[StepIndicator]
    draft: dict
    fields: list[FieldGroupView] = []
    error: str | None = None
    loading: bool = False
    entered_email: str | None = None


class WizardAdvanceResult(WizardView):
    registered_user_id: int | str | None = None
    message: str | None = None


class FieldUpdate(BaseModel):
    field: str
    value: str | None = None

    @field_validator("field")
    @classmethod
    def _known_field(cls, v: str) -> str:
        if v not in EDITABLE_FIELDS:
            raise ValueError(f"Unknown field: {v}")
        return v


class ResetRequest(BaseModel):
    confirm: bool = False


class UserRow(UserRecord):
    """UserRecord plus display strings for the table."""

    birthdate_display: str = "-"
    created_display: str = "-"


class UserListView(BaseModel):
    users: list[UserRow]
    error: str | None = None
    last_refreshed: str | None = None
