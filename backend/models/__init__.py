"""Models module - Pydantic data models"""

from .diff import DiffRequest, DiffResult, Run, RunKind
from .document import (
    Atom,
    ChoiceRequest,
    ControlsRequest,
    CreateDocumentRequest,
    DocumentResponse,
    OperationResponse,
    SelectionRequest,
    StartOperationRequest,
)
from .generation import Candidate, ChatMessage, ModelParams
from .operation import (
    Example,
    OperationContext,
    OperationControls,
    OperationSite,
    OperationState,
    OperationTrigger,
    OperationType,
    TextInputControl,
)

__all__ = [
    # Diff models
    "DiffRequest",
    "DiffResult",
    "Run",
    "RunKind",
    # Document models
    "Atom",
    "ChoiceRequest",
    "ControlsRequest",
    "CreateDocumentRequest",
    "DocumentResponse",
    "OperationResponse",
    "SelectionRequest",
    "StartOperationRequest",
    # Generation models
    "Candidate",
    "ChatMessage",
    "ModelParams",
    # Operation models
    "Example",
    "OperationContext",
    "OperationControls",
    "OperationSite",
    "OperationState",
    "OperationTrigger",
    "OperationType",
    "TextInputControl",
]
