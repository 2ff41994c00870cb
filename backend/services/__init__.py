"""Services module - Business logic layer"""

from .config_manager import ConfigManager
from .diff_generator import DiffGenerator, diff_text
from .llm_service import GatewayError, LLMService, call_llm
from .operation import (
    Operation,
    OperationCancelled,
    OperationStateError,
    OperationUnavailableError,
)
from .operation_manager import DocumentSession, DocumentStore
from .prompt_builder import PromptBuilder
from .text_editor import TextEditorService

__all__ = [
    "ConfigManager",
    "DiffGenerator",
    "diff_text",
    "GatewayError",
    "LLMService",
    "call_llm",
    "Operation",
    "OperationCancelled",
    "OperationStateError",
    "OperationUnavailableError",
    "DocumentSession",
    "DocumentStore",
    "PromptBuilder",
    "TextEditorService",
]
