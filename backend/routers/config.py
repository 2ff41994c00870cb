"""Configuration API endpoints"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from models.generation import ModelParams
from services.config_manager import ConfigManager
from services.llm_service import GatewayError, call_llm

router = APIRouter()


class ConfigUpdateRequest(BaseModel):
    """Request to update configuration"""

    provider: str | None = None
    openai: dict | None = None
    vllm: dict | None = None
    vertex: dict | None = None
    generation: dict | None = None
    operation: dict | None = None


class ConfigResponse(BaseModel):
    """Configuration response"""

    provider: str
    openai: dict
    vllm: dict
    vertex: dict
    generation: dict
    operation: dict


class ValidateResponse(BaseModel):
    """Validation response"""

    valid: bool
    message: str
    provider: str


def mask_key(key: str) -> str:
    """Mask API keys for security"""
    if not key:
        return ""
    if len(key) <= 8:
        return "*" * len(key)
    return key[:4] + "*" * (len(key) - 8) + key[-4:]


@router.get("", response_model=ConfigResponse)
async def get_config() -> ConfigResponse:
    """Get current configuration"""
    config = ConfigManager.get_instance().get_config()

    openai = config.get("openai", {}).copy()
    vllm = config.get("vllm", {}).copy()
    vertex = config.get("vertex", {}).copy()

    openai["apiKey"] = mask_key(openai.get("apiKey", ""))
    vllm["apiKey"] = mask_key(vllm.get("apiKey", ""))
    vertex["accessToken"] = mask_key(vertex.get("accessToken", ""))

    return ConfigResponse(
        provider=config.get("provider", "openai"),
        openai=openai,
        vllm=vllm,
        vertex=vertex,
        generation=config.get("generation", {}),
        operation=config.get("operation", {}),
    )


@router.put("")
async def update_config(request: ConfigUpdateRequest) -> dict[str, Any]:
    """Update configuration"""
    config_manager = ConfigManager.get_instance()
    current_config = config_manager.get_config()

    # Update only provided fields
    if request.provider:
        current_config["provider"] = request.provider
    for section in ("openai", "vllm", "vertex", "generation", "operation"):
        update = getattr(request, section)
        if update:
            current_config[section] = {**current_config.get(section, {}), **update}

    config_manager.save_config(current_config)

    return {"status": "success", "message": "Configuration updated"}


@router.post("/validate", response_model=ValidateResponse)
async def validate_config() -> ValidateResponse:
    """Validate current configuration by testing the backend connection"""
    config = ConfigManager.get_instance().get_config()
    provider = config.get("provider", "openai")

    try:
        # Simple test prompt
        candidates = await call_llm(
            "Say 'OK' if you can hear me.",
            config,
            ModelParams(candidate_count=1, max_output_tokens=16),
        )
    except (ValueError, GatewayError) as e:
        return ValidateResponse(
            valid=False,
            message=f"Connection failed: {str(e)}",
            provider=provider,
        )

    if candidates:
        return ValidateResponse(
            valid=True,
            message=f"Successfully connected to {provider}",
            provider=provider,
        )
    return ValidateResponse(
        valid=False,
        message="Received empty response from backend",
        provider=provider,
    )
