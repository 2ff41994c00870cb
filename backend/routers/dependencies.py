"""Shared FastAPI dependencies"""

from __future__ import annotations

from typing import Any

from fastapi import Depends, HTTPException

from services.config_manager import ConfigManager
from services.llm_service import LLMService
from services.operation_manager import DocumentStore

# In-memory document storage (for session persistence)
document_store = DocumentStore()


def get_config() -> dict[str, Any]:
    return ConfigManager.get_instance().get_config()


def get_document_store() -> DocumentStore:
    return document_store


def get_llm_service(config: dict[str, Any] = Depends(get_config)) -> LLMService:
    try:
        return LLMService(config)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
