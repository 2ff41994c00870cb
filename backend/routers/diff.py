"""Stateless diff endpoint"""

from __future__ import annotations

from fastapi import APIRouter

from models.diff import DiffRequest, DiffResult
from services.diff_generator import DiffGenerator

router = APIRouter()
diff_generator = DiffGenerator()


@router.post("", response_model=DiffResult)
async def diff(request: DiffRequest) -> DiffResult:
    """Word-level diff of a candidate against the original text"""
    return diff_generator.generate_diff(request.original, request.candidate)
