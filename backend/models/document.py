"""Document and operation API models"""

from __future__ import annotations

from pydantic import BaseModel

from .diff import Run
from .generation import Candidate
from .operation import (
    OperationControls,
    OperationSite,
    OperationState,
    OperationTrigger,
    OperationType,
)


class Atom(BaseModel):
    """A rendered piece of the document"""

    kind: str  # "text", "generated", "addition", "deletion", "selection"
    text: str


class CreateDocumentRequest(BaseModel):
    """Request to create an in-memory document"""

    text: str = ""


class SelectionRequest(BaseModel):
    """Request to move the selection; start == end is a collapsed cursor"""

    start: int | None = None
    end: int | None = None


class DocumentResponse(BaseModel):
    """Current document state"""

    document_id: str
    text: str
    atoms: list[Atom]
    selection: tuple[int, int] | None = None
    site: OperationSite
    available_operations: list[OperationType]


class StartOperationRequest(BaseModel):
    """Request to start an operation on a document"""

    type: OperationType
    trigger: OperationTrigger = OperationTrigger.BUTTON
    controls: dict[str, str] = {}


class ControlsRequest(BaseModel):
    """Values submitted for the controls step"""

    values: dict[str, str]


class ChoiceRequest(BaseModel):
    """Index into the operation's choices"""

    index: int


class OperationResponse(BaseModel):
    """Current operation state"""

    operation_id: str
    type: OperationType
    trigger: OperationTrigger
    state: OperationState
    message: str
    controls: OperationControls | None = None
    missing_controls: list[str] = []  # fields still empty while awaiting input
    choices: list[Candidate] = []
    highlighted: int | None = None
    preview: list[Run] = []
    error: str | None = None
    document: DocumentResponse
