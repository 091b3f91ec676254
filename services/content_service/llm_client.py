# llm_client.py - LLM completion client
# This file contains the completion backends (HTTP gateway, OpenAI SDK) and the client that normalizes their responses.

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from openai import AsyncAzureOpenAI, AsyncOpenAI
import openai
from pydantic import BaseModel, Field

from .config import Settings
from .errors import LLMError, LLMRequestError, LLMResponseError, LLMTransientError

logger = logging.getLogger(__name__)

class LLMRequest(BaseModel):
    model: str
    messages: List[Dict[str, str]]
    temperature: float = 0.7
    max_tokens: int = 1000
    stop: Optional[List[str]] = None

class LLMUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

class LLMResponse(BaseModel):
    content: str
    model: str
    usage: LLMUsage = Field(default_factory=LLMUsage)
    cached: bool = False

class CompletionBackend(ABC):
    """A provider that turns an LLMRequest into a raw JSON-like response."""

    name: str = "backend"

    @abstractmethod
    async def complete(self, request: LLMRequest) -> Dict[str, Any]:
        """Return the provider's raw response body."""

    async def close(self):
        pass

class HTTPCompletionBackend(CompletionBackend):
    """Completion gateway reached over HTTP."""

    name = "http"

    def __init__(self, base_url: str, api_key: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.http_client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), headers=headers, timeout=300.0, transport=transport
        )

    async def complete(self, request: LLMRequest) -> Dict[str, Any]:
        payload = request.model_dump(exclude_none=True)
        try:
            response = await self.http_client.post("/api/v1/llm/chat", json=payload)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise LLMTransientError(f"LLM gateway timed out: {str(e)}")
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            message = f"HTTP {status}: {e.response.text[:200]}"
            if status == 429 or status >= 500:
                raise LLMTransientError(message)
            raise LLMRequestError(message, status_code=status)
        except httpx.TransportError as e:
            raise LLMTransientError(f"LLM gateway unreachable: {str(e)}")

        try:
            body = response.json()
        except ValueError:
            raise LLMResponseError(f"LLM gateway returned non-JSON body: {response.text[:200]}")
        # Gateways may wrap the completion in {"success": ..., "data": {...}}
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            body = body["data"]
        return body

    async def close(self):
        await self.http_client.aclose()

class OpenAICompletionBackend(CompletionBackend):
    """OpenAI or Azure OpenAI through the official async SDK."""

    name = "openai"

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["OpenAICompletionBackend"]:
        if settings.azure_openai_endpoint and settings.openai_api_key:
            client = AsyncAzureOpenAI(
                azure_endpoint=settings.azure_openai_endpoint,
                api_key=settings.openai_api_key,
                api_version=settings.azure_openai_api_version,
            )
            logger.info(f"Initialized Azure OpenAI backend for {settings.azure_openai_endpoint}")
            return cls(client)
        if settings.openai_api_key:
            logger.info("Initialized OpenAI backend")
            return cls(AsyncOpenAI(api_key=settings.openai_api_key))
        return None

    async def complete(self, request: LLMRequest) -> Dict[str, Any]:
        try:
            response = await self.client.chat.completions.create(
                model=request.model,
                messages=request.messages,
                max_tokens=request.max_tokens,
                temperature=request.temperature,
                stop=request.stop or None,
            )
        except (openai.APITimeoutError, openai.APIConnectionError) as e:
            raise LLMTransientError(f"OpenAI unreachable: {str(e)}")
        except (openai.RateLimitError, openai.InternalServerError) as e:
            raise LLMTransientError(f"OpenAI temporarily unavailable: {str(e)}")
        except openai.APIStatusError as e:
            raise LLMRequestError(f"OpenAI rejected request: {str(e)}", status_code=e.status_code)
        return response.model_dump()

    async def close(self):
        await self.client.close()

def _extract_text(raw: Dict[str, Any]) -> Optional[str]:
    if isinstance(raw.get("content"), str):
        return raw["content"]
    choices = raw.get("choices")
    if isinstance(choices, list) and choices:
        choice = choices[0]
        if not isinstance(choice, dict):
            raise LLMResponseError(f"Expected choices[0] to be an object, got {type(choice).__name__}")
        message = choice.get("message") or {}
        if not isinstance(message, dict):
            raise LLMResponseError(f"Expected choices[0].message to be an object, got {type(message).__name__}")
        if isinstance(message.get("content"), str):
            return message["content"]
    if isinstance(raw.get("text"), str):
        return raw["text"]
    return None

def _token_count(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        raise LLMResponseError(f"Invalid token count in usage: {value!r}")

def normalize_response(raw: Any, model: str) -> LLMResponse:
    """Map any supported response shape onto LLMResponse."""
    if not isinstance(raw, dict):
        raise LLMResponseError(f"Expected a JSON object, got {type(raw).__name__}")
    text = _extract_text(raw)
    if text is None or not text.strip():
        raise LLMResponseError("Response contains no completion text")

    usage_data = raw.get("usage") or {}
    if not isinstance(usage_data, dict):
        raise LLMResponseError(f"Expected usage to be an object, got {type(usage_data).__name__}")
    prompt_tokens = _token_count(usage_data.get("prompt_tokens"))
    completion_tokens = _token_count(usage_data.get("completion_tokens"))
    total = _token_count(usage_data.get("total_tokens") or raw.get("tokens_used"))
    usage = LLMUsage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total or prompt_tokens + completion_tokens,
    )
    return LLMResponse(
        content=text,
        model=raw["model"] if isinstance(raw.get("model"), str) and raw["model"] else model,
        usage=usage,
        cached=bool(raw.get("cached", False)),
    )

class LLMClient:
    """Sends completion requests, falling back across backends in order."""

    def __init__(self, backends: List[CompletionBackend]):
        self.backends = backends

    @classmethod
    def from_settings(cls, settings: Settings) -> "LLMClient":
        backends: List[CompletionBackend] = []
        if settings.llm_api_url:
            backends.append(HTTPCompletionBackend(settings.llm_api_url, settings.llm_api_key))
        openai_backend = OpenAICompletionBackend.from_settings(settings)
        if openai_backend:
            backends.append(openai_backend)
        if not backends:
            logger.warning("No LLM backend configured; every phase will fail")
        return cls(backends)

    async def complete(self, request: LLMRequest) -> LLMResponse:
        if not self.backends:
            raise LLMRequestError("No LLM backend configured")

        last_error: Optional[LLMError] = None
        for index, backend in enumerate(self.backends):
            has_fallback = index < len(self.backends) - 1
            try:
                raw = await backend.complete(request)
                return normalize_response(raw, request.model)
            except LLMTransientError as e:
                last_error = e
            except LLMRequestError as e:
                if e.status_code != 404:
                    raise
                last_error = e
            if has_fallback:
                logger.warning(
                    f"LLM backend '{backend.name}' failed ({last_error}), "
                    f"falling back to '{self.backends[index + 1].name}'"
                )
        raise last_error

    async def close(self):
        for backend in self.backends:
            await backend.close()
