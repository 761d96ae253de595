# ============================================================
# asqli - AI-assisted SQL terminal client
# core/providers.py - AI provider clients (Ollama, OpenAI, Claude, Gemini)
# ============================================================

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx
import ollama
from langchain_core.prompts import ChatPromptTemplate
from loguru import logger

from config import AIConfig
from core.errors import DatabaseConnectionError, EmptyPromptError, GenerationError


@dataclass(frozen=True)
class Usage:
    """Token accounting reported alongside a generated query."""
    provider: str = ""
    model: str = ""
    prompt_tokens: int = 0
    response_tokens: int = 0
    total_tokens: int = 0
    cached_tokens: int = 0

    def summary(self) -> str:
        text = f"{self.provider}/{self.model} · {self.prompt_tokens} in, {self.response_tokens} out, {self.total_tokens} total"
        if self.cached_tokens:
            text += f", {self.cached_tokens} cached"
        return text


@dataclass
class GenerateRequest:
    prompt: str
    schema: str = ""
    database_type: str = ""
    context: str = ""


@dataclass
class GenerateResponse:
    query: str
    explanation: str = ""
    usage: Usage = field(default_factory=Usage)


# ── Prompt ────────────────────────────────────────────────────

SYSTEM_PROMPT = """You are a helpful assistant that generates SQL queries based on natural language descriptions.

You'll receive database schema information that includes tables, their columns, data types, constraints,
and relationships between tables. Use this information to generate accurate SQL queries.

Respond ONLY with the SQL query without any explanation or markdown formatting. Do not include any comments
in the SQL or any additional text.{database_section}{schema_section}{context_section}"""

SQL_PROMPT = ChatPromptTemplate.from_messages([
    ("system", SYSTEM_PROMPT),
    ("human", "{prompt}"),
])

_ROLE_NAMES = {"system": "system", "human": "user", "ai": "assistant"}


def build_messages(request: GenerateRequest) -> List[Dict[str, str]]:
    """Render the request into chat messages with plain role names."""
    messages = SQL_PROMPT.format_messages(
        prompt=request.prompt,
        database_section=f"\n\nTarget database: {request.database_type}" if request.database_type else "",
        schema_section=f"\n\n{request.schema}" if request.schema else "",
        context_section=f"\n\n{request.context}" if request.context else "",
    )
    return [{"role": _ROLE_NAMES.get(m.type, m.type), "content": m.content} for m in messages]


# ── Provider Contract ─────────────────────────────────────────

class AIProvider(ABC):
    name: str = ""

    def __init__(self, config: AIConfig, timeout: float = 60.0):
        self.config = config
        self.timeout = timeout
        self.model = config.model

    @abstractmethod
    def generate_sql(self, request: GenerateRequest) -> GenerateResponse:
        ...

    def close(self) -> None:
        pass

    def _check_prompt(self, request: GenerateRequest) -> None:
        if not request.prompt.strip():
            raise EmptyPromptError()

    def __repr__(self):
        return f"<{type(self).__name__} model={self.model!r}>"


class ProviderRegistry:
    """Maps a provider tag to a factory taking (config, timeout)."""

    def __init__(self):
        self._factories: Dict[str, Callable[[AIConfig, float], AIProvider]] = {}

    def register(self, name: str, factory: Callable[[AIConfig, float], AIProvider]) -> None:
        self._factories[name] = factory

    def create(self, config: AIConfig, timeout: float = 60.0) -> AIProvider:
        name = config.provider.strip().lower()
        factory = self._factories.get(name)
        if factory is None:
            supported = ", ".join(sorted(self._factories)) or "none"
            raise DatabaseConnectionError(f"unsupported AI provider: {config.provider} (supported: {supported})")
        try:
            provider = factory(config, timeout)
        except DatabaseConnectionError:
            raise
        except Exception as e:
            raise DatabaseConnectionError(f"failed to create AI provider {name}: {e}") from e
        logger.info(f"AI provider ready: {provider.name} ({provider.model})")
        return provider

    def providers(self) -> List[str]:
        return sorted(self._factories)


# ── Ollama ────────────────────────────────────────────────────

class OllamaProvider(AIProvider):
    """Local models through the ollama client. Picks a model when none is configured."""

    name = "ollama"

    def __init__(self, config: AIConfig, timeout: float = 60.0, client: Optional[Any] = None):
        super().__init__(config, timeout)
        self._client = client or ollama.Client(host=config.base_url or None, timeout=timeout)
        if not self.model:
            self.model = self._detect_model()

    def _detect_model(self) -> str:
        try:
            running = self._client.ps()
            if running.models:
                return running.models[0].model
        except Exception as e:
            logger.debug(f"Listing running Ollama models failed: {e}")

        try:
            available = self._client.list()
        except Exception as e:
            raise ValueError(f"cannot list models: {e} (use --model to specify a model)") from e
        if not available.models:
            raise ValueError("no models available locally, please pull a model first")
        return available.models[0].model

    def generate_sql(self, request: GenerateRequest) -> GenerateResponse:
        self._check_prompt(request)
        options = {"temperature": self.config.temperature}
        if self.config.max_tokens > 0:
            options["num_predict"] = self.config.max_tokens
        try:
            response = self._client.chat(
                model=self.model,
                messages=build_messages(request),
                options=options,
            )
        except Exception as e:
            raise GenerationError(f"Ollama API error: {e}") from e

        prompt_tokens = response.prompt_eval_count or 0
        response_tokens = response.eval_count or 0
        return GenerateResponse(
            query=response.message.content or "",
            usage=Usage(
                provider=self.name,
                model=response.model or self.model,
                prompt_tokens=prompt_tokens,
                response_tokens=response_tokens,
                total_tokens=prompt_tokens + response_tokens,
            ),
        )


# ── HTTP Providers ────────────────────────────────────────────

class HTTPProvider(AIProvider):
    """Hosted APIs reached over httpx. One pooled client per provider."""

    default_base_url = ""
    default_model = ""

    def __init__(self, config: AIConfig, timeout: float = 60.0, transport: Optional[httpx.BaseTransport] = None):
        super().__init__(config, timeout)
        self.api_key = config.resolved_api_key()
        if not self.api_key:
            raise ValueError(f"{self.name} API key is required")
        self.model = config.model or self.default_model
        self._http = httpx.Client(
            base_url=(config.base_url or self.default_base_url).rstrip("/"),
            headers=self.headers(),
            timeout=timeout,
            transport=transport,
        )

    def headers(self) -> Dict[str, str]:
        return {}

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self._http.post(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            body = e.response.text[:300]
            raise GenerationError(f"{self.name} API error: {e.response.status_code} {body}") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"{self.name} API error: {e}") from e
        except ValueError as e:
            raise GenerationError(f"{self.name} returned invalid JSON: {e}") from e

    def close(self) -> None:
        self._http.close()


class OpenAIProvider(HTTPProvider):
    name = "openai"
    default_base_url = "https://api.openai.com/v1"
    default_model = "gpt-4o-mini"

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    def generate_sql(self, request: GenerateRequest) -> GenerateResponse:
        self._check_prompt(request)
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": build_messages(request),
            "temperature": self.config.temperature,
        }
        if self.config.max_tokens > 0:
            payload["max_tokens"] = self.config.max_tokens

        data = self._post("/chat/completions", payload)
        choices = data.get("choices") or []
        if not choices:
            raise GenerationError("SQL generation failed: no choices returned")

        usage = data.get("usage") or {}
        cached = (usage.get("prompt_tokens_details") or {}).get("cached_tokens", 0)
        return GenerateResponse(
            query=choices[0].get("message", {}).get("content") or "",
            usage=Usage(
                provider=self.name,
                model=data.get("model", self.model),
                prompt_tokens=usage.get("prompt_tokens", 0),
                response_tokens=usage.get("completion_tokens", 0),
                total_tokens=usage.get("total_tokens", 0),
                cached_tokens=cached or 0,
            ),
        )


class ClaudeProvider(HTTPProvider):
    name = "claude"
    default_base_url = "https://api.anthropic.com"
    default_model = "claude-sonnet-4-5"

    def headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"}

    def generate_sql(self, request: GenerateRequest) -> GenerateResponse:
        self._check_prompt(request)
        messages = build_messages(request)
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        payload = {
            "model": self.model,
            "max_tokens": self.config.max_tokens if self.config.max_tokens > 0 else 4096,
            "temperature": self.config.temperature,
            "system": system,
            "messages": [m for m in messages if m["role"] != "system"],
        }

        data = self._post("/v1/messages", payload)
        text = "".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text")
        if not text:
            raise GenerationError("SQL generation failed: empty response")

        usage = data.get("usage") or {}
        input_tokens = usage.get("input_tokens", 0)
        output_tokens = usage.get("output_tokens", 0)
        return GenerateResponse(
            query=text,
            usage=Usage(
                provider=self.name,
                model=data.get("model", self.model),
                prompt_tokens=input_tokens,
                response_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
                cached_tokens=(usage.get("cache_read_input_tokens") or 0) + (usage.get("cache_creation_input_tokens") or 0),
            ),
        )


class GeminiProvider(HTTPProvider):
    name = "gemini"
    default_base_url = "https://generativelanguage.googleapis.com"
    default_model = "gemini-2.5-flash"

    def headers(self) -> Dict[str, str]:
        return {"x-goog-api-key": self.api_key}

    def generate_sql(self, request: GenerateRequest) -> GenerateResponse:
        self._check_prompt(request)
        messages = build_messages(request)
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        generation_config: Dict[str, Any] = {"temperature": self.config.temperature}
        if self.config.max_tokens > 0:
            generation_config["maxOutputTokens"] = self.config.max_tokens
        payload = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": [
                {"role": "user", "parts": [{"text": m["content"]}]}
                for m in messages if m["role"] == "user"
            ],
            "generationConfig": generation_config,
        }

        data = self._post(f"/v1beta/models/{self.model}:generateContent", payload)
        candidates = data.get("candidates") or []
        if not candidates:
            raise GenerationError("SQL generation failed: no candidates returned")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts)

        meta = data.get("usageMetadata") or {}
        return GenerateResponse(
            query=text,
            usage=Usage(
                provider=self.name,
                model=self.model,
                prompt_tokens=meta.get("promptTokenCount", 0),
                response_tokens=meta.get("candidatesTokenCount", 0),
                total_tokens=meta.get("totalTokenCount", 0),
                cached_tokens=meta.get("cachedContentTokenCount", 0),
            ),
        )


def build_provider_registry() -> ProviderRegistry:
    registry = ProviderRegistry()
    registry.register("ollama", OllamaProvider)
    registry.register("openai", OpenAIProvider)
    registry.register("claude", ClaudeProvider)
    registry.register("gemini", GeminiProvider)
    return registry
