"""Operation data models"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class OperationType(str, Enum):
    """Available edit operations"""

    PROPAGATE_REWRITE = "propagate_rewrite"
    REWRITE_SELECTION = "rewrite_selection"


class OperationTrigger(str, Enum):
    """How the operation was invoked"""

    BUTTON = "button"
    KEY_COMMAND = "key_command"
    CONTROL = "control"


class OperationSite(str, Enum):
    """Where the cursor/selection sits in the document"""

    SELECTION = "selection"
    CURSOR = "cursor"
    EMPTY_DOCUMENT = "empty_document"
    NONE = "none"


class OperationState(str, Enum):
    """Lifecycle of a single operation"""

    CREATED = "created"
    AWAITING_INPUT = "awaiting_input"
    RUNNING = "running"
    PRESENTING_CHOICES = "presenting_choices"
    COMMITTED = "committed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (OperationState.COMMITTED, OperationState.CANCELLED, OperationState.FAILED)


class TextInputControl(BaseModel):
    """A free-text input field shown to the user"""

    prefix: str
    description: str
    value: str = ""


class OperationControls(BaseModel):
    """Named set of input fields for one operation kind"""

    fields: dict[str, TextInputControl]

    def values(self) -> dict[str, str]:
        return {name: control.value for name, control in self.fields.items()}

    def missing(self) -> list[str]:
        """Names of fields that still have no value"""
        return [name for name, control in self.fields.items() if not control.value.strip()]

    def update(self, values: dict[str, str]) -> None:
        for name, value in values.items():
            if name not in self.fields:
                raise KeyError(f"Unknown control: {name}")
            self.fields[name].value = value


class OperationContext(BaseModel):
    """Text an operation works on, split around the target span"""

    model_config = ConfigDict(frozen=True)

    pre: str
    selected_text: str
    post: str
    controls: dict[str, str] = {}

    @property
    def all_text(self) -> str:
        return self.pre + self.selected_text + self.post

    @classmethod
    def from_document(
        cls,
        text: str,
        start: int,
        end: int,
        controls: dict[str, str] | None = None,
    ) -> "OperationContext":
        """Split text at [start, end); the three parts always rejoin to text"""
        if not 0 <= start <= end <= len(text):
            raise ValueError(f"Range ({start}, {end}) outside text of length {len(text)}")
        return cls(
            pre=text[:start],
            selected_text=text[start:end],
            post=text[end:],
            controls=controls or {},
        )


class Example(BaseModel):
    """A static few-shot example"""

    model_config = ConfigDict(frozen=True)

    pre: str
    post: str
    rewrite_from: str
    rewrite_to: str
    target_pre: str | None = None
    target_post: str | None = None
    instruction: str | None = None  # rewrite_selection only
