"""Diff-related data models"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class RunKind(str, Enum):
    """Classification of a diff run"""

    KEPT = "kept"
    INSERTED = "inserted"
    DELETED = "deleted"


class Run(BaseModel):
    """One segment of a reconciled text comparison"""

    model_config = ConfigDict(frozen=True)

    kind: RunKind
    text: str


class DiffRequest(BaseModel):
    """Request to diff two texts"""

    original: str
    candidate: str


class DiffResult(BaseModel):
    """Complete diff result for a pair of texts"""

    runs: list[Run]
    changed: bool  # False when every run is kept
