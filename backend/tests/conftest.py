"""
Shared fixtures.

These fixtures handle:
- An isolated config directory per test
- A fake model gateway returning canned candidates
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from models.generation import Candidate
from services.config_manager import ConfigManager


# ============================================================================
# Config isolation
# ============================================================================

@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config singleton at a temporary directory."""
    monkeypatch.setenv("REWRITE_AGENT_CONFIG_DIR", str(tmp_path / "config"))
    ConfigManager.reset_instance()
    yield
    ConfigManager.reset_instance()


# ============================================================================
# Gateway
# ============================================================================

def _make_gateway(*texts):
    gateway = MagicMock()
    gateway.generate = AsyncMock(
        return_value=[Candidate(text=text, raw_index=index) for index, text in enumerate(texts)]
    )
    return gateway


@pytest.fixture
def make_gateway():
    """Factory for a mocked LLMService whose generate() returns the given candidate texts."""
    return _make_gateway


@pytest.fixture
def story():
    return "The cat sat on the mat."
