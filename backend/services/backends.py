"""
Backend adapters - Per-provider request shaping and response parsing

Each adapter turns a prompt plus ModelParams into (url, headers, payload) and a
JSON response body into raw candidate texts. The adapters never perform I/O.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Union

from models.generation import ChatMessage, ModelParams

Prompt = Union[str, list[ChatMessage]]

SAFETY_CATEGORIES = ["HATE", "TOXICITY", "VIOLENCE", "SEXUAL", "MEDICAL", "DANGEROUS"]


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _check_texts(name: str, texts: list[Any]) -> list[str]:
    for text in texts:
        if not isinstance(text, str):
            raise BackendError(f"{name} returned non-text content: {type(text).__name__}")
    return texts


def _as_messages(prompt: Prompt) -> list[ChatMessage]:
    if isinstance(prompt, str):
        return [ChatMessage(role="user", content=prompt)]
    return list(prompt)


class BackendError(Exception):
    """Response body does not have the shape the backend promises"""


class BackendAdapter(ABC):
    """Translate between backend-agnostic calls and one backend's wire format"""

    name = "API"

    @abstractmethod
    def build_request(self, prompt: Prompt, params: ModelParams) -> tuple[str, dict[str, str], dict[str, Any]]:
        """Return (url, headers, payload) for a single POST"""

    @abstractmethod
    def parse_response(self, data: dict[str, Any]) -> tuple[list[str], list[str | None]]:
        """Return (texts, finish_reasons) from a response body"""


class ChatCompletionsBackend(BackendAdapter):
    """OpenAI-compatible /v1/chat/completions (OpenAI, vLLM)"""

    DEFAULT_PARAMS = {
        "temperature": 1,
        "top_p": 0.95,
        "top_k": 40,
        "n": 8,
        "max_tokens": 4096,
        "logprobs": False,
    }

    def __init__(self, name: str, endpoint: str, model: str, api_key: str | None = None):
        self.name = name
        self.url = f"{endpoint.rstrip('/')}/v1/chat/completions"
        self.model = model
        self.api_key = api_key

    def transform_params(self, params: ModelParams) -> dict[str, Any]:
        """Map ModelParams to chat completion fields; unset fields are omitted"""
        wants_logprobs = bool(params.logprobs and params.logprobs > 0)
        return _drop_none(
            {
                "max_tokens": params.max_output_tokens,
                "n": params.candidate_count,
                "temperature": params.temperature,
                "top_p": params.top_p,
                "top_k": params.top_k,
                "logprobs": True if wants_logprobs else None,
                "top_logprobs": params.logprobs if wants_logprobs else None,
            }
        )

    def build_request(self, prompt, params):
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {
            **self.DEFAULT_PARAMS,
            **self.transform_params(params),
            "model": self.model,
            "messages": [message.model_dump() for message in _as_messages(prompt)],
        }
        return self.url, headers, payload

    def parse_response(self, data):
        texts, reasons = [], []
        try:
            for choice in data.get("choices") or []:
                message = choice.get("message") or {}
                content = message.get("content", choice.get("text"))
                if content is None:
                    raise BackendError(f"{self.name} choice without content")
                texts.append(content)
                reasons.append(choice.get("finish_reason"))
        except (AttributeError, TypeError) as e:
            raise BackendError(f"Malformed {self.name} choice: {e}") from e
        return _check_texts(self.name, texts), reasons


class VertexBackend(BackendAdapter):
    """Shared Vertex AI :predict plumbing"""

    def __init__(self, project_id: str, location_id: str, model_id: str, access_token: str):
        self.model_id = model_id
        self.access_token = access_token
        self.url = (
            f"https://{location_id}-aiplatform.googleapis.com/v1/projects/{project_id}"
            f"/locations/{location_id}/publishers/google/models/{model_id}:predict"
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.access_token}",
        }

    def transform_params(self, params: ModelParams) -> dict[str, Any]:
        return _drop_none(
            {
                "maxOutputTokens": params.max_output_tokens,
                "candidateCount": params.candidate_count,
                "temperature": params.temperature,
                "topP": params.top_p,
                "topK": params.top_k,
            }
        )


class VertexTextBackend(VertexBackend):
    """text-bison style completion model"""

    name = "Vertex text"

    DEFAULT_PARAMS = {
        "temperature": 1,
        "topK": 40,
        "topP": 0.95,
        "candidateCount": 8,
        "maxOutputTokens": 1024,
        "safetySettings": [
            {"category": index, "threshold": "BLOCK_NONE"} for index, _ in enumerate(SAFETY_CATEGORIES)
        ],
    }

    def build_request(self, prompt, params):
        if not isinstance(prompt, str):
            prompt = "\n".join(message.content for message in prompt)
        payload = {
            "instances": [{"prompt": prompt}],
            "parameters": {**self.DEFAULT_PARAMS, **self.transform_params(params)},
        }
        return self.url, self._headers(), payload

    def parse_response(self, data):
        predictions = data.get("predictions") or []
        try:
            texts = [prediction["content"] for prediction in predictions]
        except (KeyError, TypeError) as e:
            raise BackendError(f"Malformed {self.name} prediction: {e}") from e
        return _check_texts(self.name, texts), [None] * len(texts)


class VertexDialogBackend(VertexBackend):
    """chat-bison style dialog model; always one candidate per call"""

    name = "Vertex dialog"

    DEFAULT_TEMPERATURE = 0.7

    def build_request(self, prompt, params):
        parameters = self.transform_params(params)
        parameters["candidateCount"] = 1
        parameters.setdefault("temperature", self.DEFAULT_TEMPERATURE)

        instance: dict[str, Any] = {"messages": []}
        for message in _as_messages(prompt):
            if message.role == "system":
                instance["context"] = message.content
            else:
                author = "user" if message.role == "user" else "bot"
                instance["messages"].append({"author": author, "content": message.content})

        payload = {"instances": [instance], "parameters": parameters}
        return self.url, self._headers(), payload

    def parse_response(self, data):
        predictions = data.get("predictions") or []
        try:
            texts = [prediction["candidates"][0]["content"] for prediction in predictions]
        except (KeyError, IndexError, TypeError) as e:
            raise BackendError(f"Malformed {self.name} prediction: {e}") from e
        return _check_texts(self.name, texts), [None] * len(texts)


def create_backend(config: dict[str, Any]) -> BackendAdapter:
    """Pick the adapter for the configured provider. Raises ValueError if misconfigured."""
    provider = config.get("provider", "openai")

    if provider == "openai":
        cfg = config.get("openai", {})
        api_key = cfg.get("apiKey")
        if not api_key:
            raise ValueError("OpenAI API key not configured")
        endpoint = cfg.get("endpoint", "https://api.openai.com")
        return ChatCompletionsBackend("OpenAI", endpoint, cfg.get("model", "gpt-4"), api_key)

    if provider == "vllm":
        cfg = config.get("vllm", {})
        endpoint = cfg.get("endpoint", "http://localhost:8000")
        return ChatCompletionsBackend("vLLM", endpoint, cfg.get("model", "default"), cfg.get("apiKey") or None)

    if provider in ("vertex_text", "vertex_dialog"):
        cfg = config.get("vertex", {})
        access_token = cfg.get("accessToken")
        if not access_token:
            raise ValueError("Vertex access token not configured")
        project_id = cfg.get("projectId")
        if not project_id:
            raise ValueError("Vertex project id not configured")
        location_id = cfg.get("locationId", "us-central1")
        if provider == "vertex_text":
            return VertexTextBackend(project_id, location_id, cfg.get("textModel", "text-bison@001"), access_token)
        return VertexDialogBackend(project_id, location_id, cfg.get("dialogModel", "chat-bison@001"), access_token)

    raise ValueError(f"Unsupported provider: {provider}")
