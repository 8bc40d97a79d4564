"""
Claude API Client
=================
Provides Claude API access for the codegen and triage capabilities:
- Multi-model support (Opus 4.5, Sonnet 4.5, Haiku 4.5)
- Task-based automatic model selection
- Prompt caching for stable system prompts
- Retry with exponential backoff on transient API errors
- Token usage tracking and cost estimation

Author: Gia Tenica*
*Gia Tenica is an anagram for Agentic AI. Gia is a fully autonomous AI researcher,
for more information see: https://giatenica.com
"""

import os
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

import anthropic
import httpx
from loguru import logger
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from pipewright.config import TIMEOUTS


def load_env_file_lenient(env_path: Optional[Path] = None) -> None:
    """Load .env from repo root without raising or printing parse warnings.

    Existing environment variables always win.
    """
    env_path = env_path or Path(__file__).resolve().parents[2] / ".env"
    if not env_path.exists():
        return

    try:
        lines = env_path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError):
        return

    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if not key:
            continue
        if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", key):
            continue
        os.environ.setdefault(key, value)


class ModelTier(Enum):
    """Model tiers for task-based selection."""
    OPUS = "opus"       # Premium: complex reasoning
    SONNET = "sonnet"   # Balanced: coding, triage
    HAIKU = "haiku"     # Fast: lightweight stages


class TaskType(Enum):
    """Task types for automatic model selection."""
    CODE_GENERATION = "code_generation"
    FAILURE_TRIAGE = "failure_triage"


TASK_MODEL_MAP = {
    TaskType.CODE_GENERATION: ModelTier.SONNET,
    TaskType.FAILURE_TRIAGE: ModelTier.SONNET,
}


@dataclass
class ModelInfo:
    """Information about a Claude model."""
    id: str
    alias: str
    tier: ModelTier
    input_price_per_mtok: float
    output_price_per_mtok: float


MODELS = {
    ModelTier.OPUS: ModelInfo(
        id="claude-opus-4-5-20251101",
        alias="claude-opus-4-5",
        tier=ModelTier.OPUS,
        input_price_per_mtok=5.0,
        output_price_per_mtok=25.0,
    ),
    ModelTier.SONNET: ModelInfo(
        id="claude-sonnet-4-5-20250929",
        alias="claude-sonnet-4-5",
        tier=ModelTier.SONNET,
        input_price_per_mtok=3.0,
        output_price_per_mtok=15.0,
    ),
    ModelTier.HAIKU: ModelInfo(
        id="claude-haiku-4-5-20251001",
        alias="claude-haiku-4-5",
        tier=ModelTier.HAIKU,
        input_price_per_mtok=1.0,
        output_price_per_mtok=5.0,
    ),
}

_TIER_BY_NAME = {"opus": ModelTier.OPUS, "sonnet": ModelTier.SONNET, "haiku": ModelTier.HAIKU}


def resolve_tier(model: Union[ModelTier, str, None], default: ModelTier = ModelTier.SONNET) -> ModelTier:
    """Map a tier enum or name ('opus', 'sonnet', 'haiku') to a ModelTier."""
    if model is None:
        return default
    if isinstance(model, ModelTier):
        return model
    return _TIER_BY_NAME.get(model.lower(), default)


@dataclass
class TokenUsage:
    """Track token usage across requests."""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_tokens: int = 0
    cache_read_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, usage: dict):
        """Add usage from API response."""
        self.input_tokens += usage.get("input_tokens", 0) or 0
        self.output_tokens += usage.get("output_tokens", 0) or 0
        self.cache_creation_tokens += usage.get("cache_creation_input_tokens", 0) or 0
        self.cache_read_tokens += usage.get("cache_read_input_tokens", 0) or 0

    def estimate_cost(self, model: ModelTier) -> float:
        """Estimate cost in USD based on model pricing."""
        info = MODELS[model]
        input_cost = (self.input_tokens / 1_000_000) * info.input_price_per_mtok
        output_cost = (self.output_tokens / 1_000_000) * info.output_price_per_mtok
        return input_cost + output_cost


class ClaudeClient:
    """
    Claude API client used by pipeline capabilities.

    Only the async path is exposed: the runner awaits every stage invocation.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        default_model: Union[ModelTier, str] = ModelTier.SONNET,
        enable_caching: bool = True,
    ):
        """
        Initialize Claude client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            default_model: Default model tier (OPUS, SONNET, HAIKU) or string
            enable_caching: Whether to enable prompt caching
        """
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY not found in environment")

        timeout_config = httpx.Timeout(float(TIMEOUTS.LLM_API), connect=float(TIMEOUTS.LLM_CONNECT))

        self.async_client = anthropic.AsyncAnthropic(
            api_key=self.api_key,
            timeout=timeout_config,
        )

        self.default_model = resolve_tier(default_model)
        self.enable_caching = enable_caching
        self.usage = TokenUsage()

        logger.info("Claude client initialized with model: {}", MODELS[self.default_model].id)

    def get_model_id(self, model: Optional[Union[ModelTier, str]] = None) -> str:
        """Get model ID string from tier or string."""
        return MODELS[resolve_tier(model, self.default_model)].id

    def _prepare_cached_content(self, content: str, cache_type: str = "ephemeral") -> dict:
        return {
            "type": "text",
            "text": content,
            "cache_control": {"type": cache_type}
        }

    async def chat_async(
        self,
        messages: list,
        system: Optional[str] = None,
        model: Optional[Union[ModelTier, str]] = None,
        task: Optional[TaskType] = None,
        max_tokens: int = 16384,
        temperature: float = 1.0,
        cache_system: bool = True,
    ) -> str:
        """
        Send a chat request with retry logic for resilience.

        Retries on transient API errors (rate limits, overload, network issues).
        Uses exponential backoff: 1s, 2s, 4s (3 attempts total).

        Model selection: explicit > task-based > default.
        """
        if model:
            model_id = self.get_model_id(model)
        elif task:
            model_id = self.get_model_id(TASK_MODEL_MAP.get(task, self.default_model))
        else:
            model_id = self.get_model_id()

        system_content = None
        if system:
            if self.enable_caching and cache_system:
                system_content = [self._prepare_cached_content(system)]
            else:
                system_content = system

        kwargs = {
            "model": model_id,
            "max_tokens": max_tokens,
            "messages": messages,
            "temperature": temperature,
        }

        if system_content:
            kwargs["system"] = system_content

        @retry(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type((anthropic.RateLimitError, anthropic.APIConnectionError, anthropic.InternalServerError)),
            reraise=True,
        )
        async def _make_request():
            return await self.async_client.messages.create(**kwargs)

        response = await _make_request()
        self.usage.add(response.usage.model_dump())

        logger.debug("Chat response [{}]: {}", model_id, response.usage)

        return response.content[0].text

    def get_usage_summary(self) -> dict:
        """Get token usage summary with cost estimates."""
        return {
            "input_tokens": self.usage.input_tokens,
            "output_tokens": self.usage.output_tokens,
            "total_tokens": self.usage.total_tokens,
            "cache_creation_tokens": self.usage.cache_creation_tokens,
            "cache_read_tokens": self.usage.cache_read_tokens,
            "estimated_cost_usd": f"${self.usage.estimate_cost(self.default_model):.4f}",
        }


def get_claude_client(
    model: Union[ModelTier, str] = ModelTier.SONNET,
    enable_caching: bool = True,
) -> ClaudeClient:
    """Get a configured Claude client."""
    return ClaudeClient(
        default_model=model,
        enable_caching=enable_caching,
    )
