"""Routers module - FastAPI route handlers"""

from . import config, diff, documents

__all__ = ["config", "diff", "documents"]
