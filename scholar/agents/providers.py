"""Completion providers: one request builder / response parser per vendor."""

import logging
from typing import Any, Optional

import ollama
import requests
from pydantic import BaseModel, Field

from scholar.agents.models import AIModelConfig
from scholar.core.errors import (
    EmptyCompletion,
    ProviderNotImplemented,
    ProviderRequestFailed,
)

logger = logging.getLogger(__name__)

MAX_TOKENS = 1024
TEMPERATURE = 0.7

_PROBE_PROMPT = "Hello, are you operational?"
_PROBE_MAX_TOKENS = 50


class ProviderRequest(BaseModel):
    """A fully built outbound completion request."""

    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    payload: dict[str, Any]


# ── Base ─────────────────────────────────────────────────────────────


class CompletionProvider:
    """Interface every provider implements."""

    name: str = ""

    def build_request(
        self, config: AIModelConfig, prompt: str, max_tokens: int = MAX_TOKENS
    ) -> ProviderRequest:
        raise NotImplementedError

    def parse_response(self, body: Any) -> str:
        raise NotImplementedError

    def complete(self, config: AIModelConfig, prompt: str) -> str:
        raise NotImplementedError

    def check(self, config: AIModelConfig) -> bool:
        """Validate that the config can reach the provider. Raises on failure."""
        raise NotImplementedError


# ── OpenAI-compatible Chat Completions over HTTP ─────────────────────


class ChatCompletionsProvider(CompletionProvider):
    """POST {base}/chat/completions with a bearer key, single user turn."""

    def __init__(
        self,
        name: str,
        default_base_url: str,
        extra_payload: Optional[dict[str, Any]] = None,
        extra_headers: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        self.name = name
        self.default_base_url = default_base_url
        self.extra_payload = extra_payload or {}
        self.extra_headers = extra_headers or {}
        self.timeout = timeout

    def endpoint(self, config: AIModelConfig) -> str:
        base = config.base_url or self.default_base_url
        return f"{base.rstrip('/')}/chat/completions"

    def build_request(
        self, config: AIModelConfig, prompt: str, max_tokens: int = MAX_TOKENS
    ) -> ProviderRequest:
        payload = {
            "model": config.model_name,
            "messages": [{"role": "user", "content": prompt}],
            "stream": False,
            "max_tokens": max_tokens,
            "temperature": TEMPERATURE,
            **self.extra_payload,
        }
        headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
            **self.extra_headers,
        }
        return ProviderRequest(url=self.endpoint(config), headers=headers, payload=payload)

    def parse_response(self, body: Any) -> str:
        choices = (body or {}).get("choices") or []
        message = (choices[0] or {}).get("message") if choices else None
        if not message or message.get("content") is None:
            raise EmptyCompletion()
        return message["content"]

    def complete(self, config: AIModelConfig, prompt: str) -> str:
        return self._send(self.build_request(config, prompt))

    def check(self, config: AIModelConfig) -> bool:
        self._send(self.build_request(config, _PROBE_PROMPT, max_tokens=_PROBE_MAX_TOKENS))
        return True

    def _send(self, request: ProviderRequest) -> str:
        logger.info("Requesting %s completion: %s", self.name, request.url)
        response = requests.post(
            request.url,
            headers=request.headers,
            json=request.payload,
            timeout=self.timeout,
        )
        if not response.ok:
            raise ProviderRequestFailed(
                _error_message(response), status_code=response.status_code
            )
        return self.parse_response(response.json())


def _error_message(response: requests.Response) -> str:
    """Upstream error.message if the body has one, else the HTTP status."""
    try:
        error = response.json().get("error")
    except (ValueError, AttributeError):
        error = None

    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return f"API Error: {response.status_code}"


# ── Ollama ───────────────────────────────────────────────────────────


class OllamaProvider(CompletionProvider):
    """Local models through the ollama client; base_url overrides the host."""

    name = "ollama"

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

    def _client(self, config: AIModelConfig) -> ollama.Client:
        return ollama.Client(host=config.base_url, timeout=self.timeout)

    def build_request(
        self, config: AIModelConfig, prompt: str, max_tokens: int = MAX_TOKENS
    ) -> ProviderRequest:
        host = (config.base_url or "http://localhost:11434").rstrip("/")
        return ProviderRequest(
            url=f"{host}/api/chat",
            payload={
                "model": config.model_name,
                "messages": [{"role": "user", "content": prompt}],
                "stream": False,
                "options": {"temperature": TEMPERATURE, "num_predict": max_tokens},
            },
        )

    def parse_response(self, body: Any) -> str:
        content = body.message.content if body is not None else None
        if not content:
            raise EmptyCompletion()
        return content

    def complete(self, config: AIModelConfig, prompt: str) -> str:
        request = self.build_request(config, prompt)
        logger.info("Requesting ollama completion: %s", config.model_name)
        try:
            response = self._client(config).chat(
                model=request.payload["model"],
                messages=request.payload["messages"],
                options=request.payload["options"],
            )
        except ollama.ResponseError as exc:
            raise ProviderRequestFailed(exc.error, status_code=exc.status_code) from exc
        return self.parse_response(response)

    def check(self, config: AIModelConfig) -> bool:
        """List local models and require config.model_name among them."""
        try:
            listing = self._client(config).list()
        except ollama.ResponseError as exc:
            raise ProviderRequestFailed(exc.error, status_code=exc.status_code) from exc

        local = {m.model for m in listing.models}
        wanted = config.model_name
        if wanted not in local and f"{wanted}:latest" not in local:
            raise ProviderRequestFailed(f"Model {wanted} is not pulled on the ollama server")
        return True


# ── Not yet wired up ─────────────────────────────────────────────────


class UnimplementedProvider(CompletionProvider):
    """Known vendor without a completion backend. Only key format is checked."""

    def __init__(self, name: str, key_prefix: str | None = None, min_key_length: int = 10):
        self.name = name
        self.key_prefix = key_prefix
        self.min_key_length = min_key_length

    def build_request(
        self, config: AIModelConfig, prompt: str, max_tokens: int = MAX_TOKENS
    ) -> ProviderRequest:
        raise ProviderNotImplemented(self.name)

    def parse_response(self, body: Any) -> str:
        raise ProviderNotImplemented(self.name)

    def complete(self, config: AIModelConfig, prompt: str) -> str:
        raise ProviderNotImplemented(self.name)

    def check(self, config: AIModelConfig) -> bool:
        if self.key_prefix and not config.api_key.startswith(self.key_prefix):
            raise ValueError(f"Invalid {self.name} API key format")
        if len(config.api_key) < self.min_key_length:
            raise ValueError(f"Invalid {self.name} API key format")
        return True


# ── Registry ─────────────────────────────────────────────────────────


def default_providers(timeout: float | None = None) -> dict[str, CompletionProvider]:
    """Registry keyed by provider tag."""
    return {
        "siliconflow": ChatCompletionsProvider(
            "siliconflow",
            "https://api.siliconflow.cn/v1",
            extra_payload={
                "top_p": 0.7,
                "top_k": 50,
                "frequency_penalty": 0.5,
                "n": 1,
                "response_format": {"type": "text"},
            },
            timeout=timeout,
        ),
        "openrouter": ChatCompletionsProvider(
            "openrouter",
            "https://openrouter.ai/api/v1",
            extra_headers={
                "HTTP-Referer": "http://localhost",
                "X-Title": "Research Assistant",
            },
            timeout=timeout,
        ),
        "ollama": OllamaProvider(timeout=timeout),
        "openai": UnimplementedProvider("openai", key_prefix="sk-"),
        "anthropic": UnimplementedProvider("anthropic", key_prefix="sk-"),
        "google": UnimplementedProvider("google", min_key_length=20),
        "deepseek": UnimplementedProvider("deepseek"),
    }
