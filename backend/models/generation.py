"""Model gateway data models"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict


class ChatMessage(BaseModel):
    """A single message of a chat-style prompt"""

    role: Literal["user", "assistant", "system"]
    content: str


class ModelParams(BaseModel):
    """Backend-agnostic generation parameters; unset fields fall back to backend defaults"""

    max_output_tokens: int | None = None
    candidate_count: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    logprobs: int | None = None  # number of top logprobs, 0 or None disables


class Candidate(BaseModel):
    """One generated text option"""

    model_config = ConfigDict(frozen=True)

    text: str
    raw_index: int | None = None
    finish_reason: str | None = None
