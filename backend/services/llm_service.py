"""
LLM Service - Uniform gateway over text-generation backends
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any

import aiohttp

from models.generation import Candidate, ModelParams

from .backends import BackendAdapter, BackendError, Prompt, create_backend
from .result_parser import create_candidates, parse_results

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """A backend call failed: network error, non-success status or malformed body"""


class LLMService:
    """Service for generating candidate texts from the configured provider"""

    def __init__(self, config: dict[str, Any], backend: BackendAdapter | None = None):
        self.config = config
        self.provider = config.get("provider", "openai")
        self.backend = backend or create_backend(config)

    # ========== HTTP ==========

    @asynccontextmanager
    async def _request(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ):
        """Context manager for HTTP POST requests with automatic session cleanup"""
        provider = self.backend.name
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(url, json=payload, headers=headers) as response:
                    if not 200 <= response.status < 300:
                        error_text = await response.text()
                        logger.error("%s API error (%s): %s", provider, response.status, error_text)
                        raise GatewayError(f"{provider} API error ({response.status}): {error_text}")
                    yield response
        except aiohttp.ClientError as e:
            raise GatewayError(f"{provider} request failed: {e}") from e

    async def _request_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make request and return JSON response"""
        async with self._request(url, payload, headers) as response:
            try:
                data = await response.json(content_type=None)
            except (json.JSONDecodeError, UnicodeDecodeError, aiohttp.ContentTypeError) as e:
                raise GatewayError(f"{self.backend.name} returned malformed JSON: {e}") from e
        if not isinstance(data, dict):
            raise GatewayError(f"{self.backend.name} returned unexpected body: {type(data).__name__}")
        return data

    # ========== Public API ==========

    def parse_results(
        self,
        results: list[Candidate],
        input_prompt: str = "",
        use_delimiters: bool = True,
    ) -> list[Candidate]:
        return parse_results(results, input_prompt, use_delimiters)

    async def query(self, prompt: Prompt, params: ModelParams | None = None) -> list[Candidate]:
        """Issue one request and return the unparsed candidates"""
        params = params or ModelParams()
        url, headers, payload = self.backend.build_request(prompt, params)

        logger.debug("Prompt text: %s", prompt)
        data = await self._request_json(url, payload, headers)

        try:
            texts, reasons = self.backend.parse_response(data)
        except BackendError as e:
            raise GatewayError(str(e)) from e

        logger.info("Received %d candidates from %s", len(texts), self.backend.name)
        return create_candidates(texts, reasons)

    async def generate(
        self,
        prompt: Prompt,
        params: ModelParams | None = None,
        should_parse: bool = True,
        use_delimiters: bool = True,
    ) -> list[Candidate]:
        """Generate candidates; no retries, failures surface as GatewayError"""
        results = await self.query(prompt, params)
        if not should_parse:
            return results
        input_prompt = prompt if isinstance(prompt, str) else ""
        parsed = self.parse_results(results, input_prompt, use_delimiters)
        logger.info("Kept %d of %d candidates after parsing", len(parsed), len(results))
        return parsed


async def retry_with_backoff(operation, max_retries: int = 0, base_delay: float = 2.0):
    """Caller-side retry policy: re-run operation on GatewayError up to max_retries more times"""
    attempt = 0
    while True:
        try:
            return await operation()
        except GatewayError as e:
            if attempt >= max_retries:
                raise
            wait_time = (2**attempt) * base_delay
            logger.warning(
                "Generation failed: %s. Retrying in %ss... (attempt %d/%d)",
                e,
                wait_time,
                attempt + 1,
                max_retries,
            )
            attempt += 1
            await asyncio.sleep(wait_time)


# ═══════════════════════════════════════════════════════════════════════════
# Module-level helper functions
# ═══════════════════════════════════════════════════════════════════════════


async def call_llm(prompt: Prompt, config: dict[str, Any], params: ModelParams | None = None) -> list[Candidate]:
    """Convenience function to generate candidates with the given config."""
    service = LLMService(config)
    return await service.generate(prompt, params)
