"""
Operation Manager - One active operation per document
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from typing import Any

from models.generation import ModelParams
from models.operation import OperationControls, OperationTrigger, OperationType

from .llm_service import LLMService
from .operation import OPERATION_KINDS, Operation, available_operations
from .text_editor import TextEditorService

logger = logging.getLogger(__name__)


class DocumentSession:
    """A document, its shared control values and its current operation"""

    def __init__(self, text: str = "", document_id: str | None = None):
        self.id = document_id or str(uuid.uuid4())
        self.text_editor = TextEditorService(text)
        # Shared control configuration, one per operation type
        self.controls: dict[OperationType, OperationControls] = {
            operation_type: kind.make_controls() for operation_type, kind in OPERATION_KINDS.items()
        }
        self.operation: Operation | None = None
        self._task: asyncio.Task | None = None

    @property
    def active_operation(self) -> Operation | None:
        if self.operation is not None and self.operation.is_active:
            return self.operation
        return None

    def available_operations(self):
        return available_operations(self.text_editor.get_operation_site())

    async def resolve_active(self) -> None:
        """Cancel the active operation, if any, and wait for it to finish"""
        operation = self.active_operation
        if operation is None:
            return
        logger.info("Cancelling active operation %s before starting another", operation.id[:8])
        operation.cancel()
        await operation.wait_settled()
        if self._task is not None:
            await self._task

    async def start_operation(
        self,
        operation_type: OperationType,
        llm_service: LLMService,
        trigger: OperationTrigger = OperationTrigger.BUTTON,
        prefilled: dict[str, str] | None = None,
        config: dict[str, Any] | None = None,
    ) -> Operation:
        """Start an operation and return once it is settled. Raises OperationUnavailableError."""
        await self.resolve_active()

        operation_config = (config or {}).get("operation", {})
        seed = operation_config.get("shuffleSeed")
        generation = (config or {}).get("generation") or {}
        params = ModelParams(
            max_output_tokens=generation.get("maxOutputTokens"),
            candidate_count=generation.get("candidateCount"),
            temperature=generation.get("temperature"),
            top_p=generation.get("topP"),
            top_k=generation.get("topK"),
            logprobs=generation.get("logprobs"),
        )

        operation = Operation(
            operation_type,
            self.text_editor,
            llm_service,
            trigger=trigger,
            controls=self.controls[operation_type],
            prefilled=prefilled,
            params=params,
            timeout_seconds=operation_config.get("timeoutSeconds"),
            max_retries=operation_config.get("maxRetries", 0),
            rng=random.Random(seed) if seed is not None else None,
        )
        self.operation = operation
        self._task = asyncio.create_task(operation.start())
        await operation.wait_settled()
        return operation


class DocumentStore:
    """In-memory document sessions"""

    def __init__(self):
        self._sessions: dict[str, DocumentSession] = {}

    def create(self, text: str = "") -> DocumentSession:
        session = DocumentSession(text)
        self._sessions[session.id] = session
        return session

    def get(self, document_id: str) -> DocumentSession | None:
        return self._sessions.get(document_id)

    def clear(self) -> None:
        self._sessions.clear()
