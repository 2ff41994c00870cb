"""Document and operation API endpoints"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from models.document import (
    ChoiceRequest,
    ControlsRequest,
    CreateDocumentRequest,
    DocumentResponse,
    OperationResponse,
    SelectionRequest,
    StartOperationRequest,
)
from models.operation import OperationState
from services.llm_service import LLMService
from services.operation import Operation, OperationStateError, OperationUnavailableError
from services.operation_manager import DocumentSession, DocumentStore

from .dependencies import get_config, get_document_store, get_llm_service

router = APIRouter()


def _get_session(store: DocumentStore, document_id: str) -> DocumentSession:
    session = store.get(document_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Document not found: {document_id}")
    return session


def _get_operation(session: DocumentSession) -> Operation:
    if session.operation is None:
        raise HTTPException(status_code=404, detail="No operation on this document")
    return session.operation


def document_response(session: DocumentSession) -> DocumentResponse:
    editor = session.text_editor
    return DocumentResponse(
        document_id=session.id,
        text=editor.get_plain_text(),
        atoms=editor.get_atoms(),
        selection=editor.get_range(),
        site=editor.get_operation_site(),
        available_operations=session.available_operations(),
    )


def operation_response(session: DocumentSession, operation: Operation) -> OperationResponse:
    awaiting_input = operation.state == OperationState.AWAITING_INPUT
    return OperationResponse(
        operation_id=operation.id,
        type=operation.type,
        trigger=operation.trigger,
        state=operation.state,
        message=operation.message,
        controls=operation.controls if awaiting_input else None,
        missing_controls=operation.controls.missing() if awaiting_input else [],
        choices=operation.choices,
        highlighted=operation.highlighted,
        preview=operation.preview,
        error=operation.error,
        document=document_response(session),
    )


@router.post("", response_model=DocumentResponse)
async def create_document(
    request: CreateDocumentRequest,
    store: DocumentStore = Depends(get_document_store),
) -> DocumentResponse:
    """Create an in-memory document"""
    return document_response(store.create(request.text))


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    store: DocumentStore = Depends(get_document_store),
) -> DocumentResponse:
    """Get document text, atoms and the operations available at the selection"""
    return document_response(_get_session(store, document_id))


@router.put("/{document_id}/selection", response_model=DocumentResponse)
async def set_selection(
    document_id: str,
    request: SelectionRequest,
    store: DocumentStore = Depends(get_document_store),
) -> DocumentResponse:
    """Move the selection; not allowed while an operation is active"""
    session = _get_session(store, document_id)
    if session.active_operation is not None:
        raise HTTPException(status_code=409, detail="An operation is in progress")
    try:
        session.text_editor.set_range(request.start, request.end)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return document_response(session)


@router.post("/{document_id}/operations", response_model=OperationResponse)
async def start_operation(
    document_id: str,
    request: StartOperationRequest,
    store: DocumentStore = Depends(get_document_store),
    config: dict[str, Any] = Depends(get_config),
    llm_service: LLMService = Depends(get_llm_service),
) -> OperationResponse:
    """Start an operation, resolving any active one first"""
    session = _get_session(store, document_id)
    try:
        operation = await session.start_operation(
            request.type,
            llm_service,
            trigger=request.trigger,
            prefilled=request.controls,
            config=config,
        )
    except OperationUnavailableError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except KeyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return operation_response(session, operation)


@router.get("/{document_id}/operations/current", response_model=OperationResponse)
async def get_operation(
    document_id: str,
    store: DocumentStore = Depends(get_document_store),
) -> OperationResponse:
    """Get the latest operation of the document"""
    session = _get_session(store, document_id)
    return operation_response(session, _get_operation(session))


@router.post("/{document_id}/operations/current/controls", response_model=OperationResponse)
async def submit_controls(
    document_id: str,
    request: ControlsRequest,
    store: DocumentStore = Depends(get_document_store),
) -> OperationResponse:
    """Submit the values requested by the controls step"""
    session = _get_session(store, document_id)
    operation = _get_operation(session)
    try:
        operation.submit_controls(request.values)
    except (OperationStateError, KeyError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    await operation.wait_settled()
    return operation_response(session, operation)


@router.post("/{document_id}/operations/current/highlight", response_model=OperationResponse)
async def highlight_choice(
    document_id: str,
    request: ChoiceRequest,
    store: DocumentStore = Depends(get_document_store),
) -> OperationResponse:
    """Preview a choice in place of the original text"""
    session = _get_session(store, document_id)
    operation = _get_operation(session)
    try:
        operation.highlight(request.index)
    except (OperationStateError, IndexError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return operation_response(session, operation)


@router.post("/{document_id}/operations/current/commit", response_model=OperationResponse)
async def commit_choice(
    document_id: str,
    request: ChoiceRequest,
    store: DocumentStore = Depends(get_document_store),
) -> OperationResponse:
    """Accept a choice; its plain text replaces the original"""
    session = _get_session(store, document_id)
    operation = _get_operation(session)
    try:
        operation.commit(request.index)
    except (OperationStateError, IndexError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    await operation.wait_settled()
    return operation_response(session, operation)


@router.post("/{document_id}/operations/current/cancel", response_model=OperationResponse)
async def cancel_operation(
    document_id: str,
    store: DocumentStore = Depends(get_document_store),
) -> OperationResponse:
    """Dismiss the operation and restore the document"""
    session = _get_session(store, document_id)
    operation = _get_operation(session)
    operation.cancel()
    await operation.wait_settled()
    return operation_response(session, operation)
