"""
Async LLM client using LiteLLM for multi-provider support.

A task picks the primary model and its fallbacks; an explicit model replaces
the primary but keeps the task's fallbacks. Fallbacks whose provider has no
API key are dropped up front so a transient failure never turns into an
authentication error on the next model.

Usage:
    from cellfill.llm.llm_client import LLMClient, LLMTask

    client = LLMClient(task=LLMTask.CELL_ENRICHMENT, api_keys={"openai": key})
    response = await client.generate("Who is the CEO of Acme Corp?", json_mode=True)
"""

import hashlib
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import litellm
from litellm import acompletion, completion_cost

from ..config import get_api_key
from ..constants import LLM_TIMEOUT_SECONDS
from ..errors import is_permanent_error, is_transient_error

litellm.suppress_debug_info = True
logging.getLogger("LiteLLM").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


MODEL_GEMINI_25_FLASH = "gemini-2.5-flash"
MODEL_GEMINI_25_FLASH_LITE = "gemini-2.5-flash-lite"
MODEL_CLAUDE_HAIKU_45 = "claude-haiku-4-5"
MODEL_CLAUDE_SONNET_45 = "claude-sonnet-4-5"
MODEL_GPT4O_MINI = "gpt-4o-mini"
MODEL_GPT5_MINI = "gpt-5-mini"


@dataclass(frozen=True)
class ModelSpec:
    """LiteLLM routing name, provider and USD price per 1M tokens."""

    litellm_name: str
    provider: str
    input_cost: float
    output_cost: float
    json_mode: bool = True

    @property
    def fixed_temperature(self) -> Optional[float]:
        # GPT-5 models reject anything but 1.0
        return 1.0 if self.litellm_name.startswith("gpt-5") else None

    @property
    def accepts_max_tokens(self) -> bool:
        # Gemini thinking budgets eat into max_tokens; GPT-5 reasoning does too
        return self.provider != "google" and self.fixed_temperature is None


MODEL_REGISTRY: Dict[str, ModelSpec] = {
    MODEL_GEMINI_25_FLASH: ModelSpec("gemini/gemini-2.5-flash", "google", 0.30, 2.50),
    MODEL_GEMINI_25_FLASH_LITE: ModelSpec("gemini/gemini-2.5-flash-lite", "google", 0.10, 0.40),
    MODEL_CLAUDE_HAIKU_45: ModelSpec("anthropic/claude-haiku-4-5", "anthropic", 1.00, 5.00),
    MODEL_CLAUDE_SONNET_45: ModelSpec("anthropic/claude-sonnet-4-5", "anthropic", 3.00, 15.00),
    MODEL_GPT4O_MINI: ModelSpec("gpt-4o-mini", "openai", 0.15, 0.60),
    MODEL_GPT5_MINI: ModelSpec("gpt-5-mini", "openai", 0.25, 2.00),
}

PROVIDER_ENV_VARS: Dict[str, Tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "google": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
}


class LLMTask(Enum):
    """Call sites with their own model choice."""

    CELL_ENRICHMENT = "cell_enrichment"


# Task -> (primary_model, fallback_models)
TASK_MODELS: Dict[LLMTask, Tuple[str, List[str]]] = {
    LLMTask.CELL_ENRICHMENT: (MODEL_GPT4O_MINI, [MODEL_GEMINI_25_FLASH]),
}


def estimate_cost(model_name: str, input_tokens: int, output_tokens: int) -> float:
    """Cost in USD from registry prices; 0.0 for unknown models."""
    spec = MODEL_REGISTRY.get(model_name)
    if spec is None:
        return 0.0
    return (input_tokens * spec.input_cost + output_tokens * spec.output_cost) / 1_000_000


@dataclass
class LLMResponse:
    """One completion with the bookkeeping needed for cost reports."""

    text: str
    model: str
    provider: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0
    finish_reason: Optional[str] = None
    prompt_hash: str = ""
    task: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class LLMClient:
    """
    Async completion client with fallback across models.

    Permanent errors (bad key, invalid request) are raised from the first
    model that hits them; anything else moves on to the next fallback.
    """

    def __init__(
        self,
        task: Optional[LLMTask] = None,
        model: Optional[str] = None,
        api_keys: Optional[Dict[str, str]] = None,
    ):
        """
        Args:
            task: Supplies the primary model (unless model is given) and fallbacks
            model: Registry name of the primary model
            api_keys: Provider ("openai", "anthropic", "google"/"gemini") -> API key;
                providers missing here are looked up in the environment
        """
        if model is not None and model not in MODEL_REGISTRY:
            raise ValueError(f"Unknown model: {model}. Available: {list(MODEL_REGISTRY)}")

        self.task = task
        self.api_keys = {("google" if p == "gemini" else p): k for p, k in (api_keys or {}).items() if k}

        primary, fallbacks = TASK_MODELS[task] if task else (MODEL_GPT4O_MINI, [])
        self.model_name = model or primary
        self.fallback_models = [
            m for m in fallbacks if m != self.model_name and self.api_key_for(MODEL_REGISTRY[m].provider)
        ]
        logger.debug(f"LLM client: {self.model_name} (fallbacks: {self.fallback_models or 'none'})")

    def api_key_for(self, provider: str) -> Optional[str]:
        return self.api_keys.get(provider) or get_api_key(*PROVIDER_ENV_VARS.get(provider, ()))

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: Optional[int] = None,
        json_mode: bool = False,
        retry_on_error: bool = True,
    ) -> LLMResponse:
        """
        Complete prompt with the primary model, falling back on non-permanent errors.

        Args:
            prompt: User message
            system_prompt: Optional system message
            temperature: Sampling temperature
            max_tokens: Output cap (ignored by models that do not take one)
            json_mode: Ask for a JSON object response
            retry_on_error: Let LiteLLM retry each model twice before falling back

        Returns:
            LLMResponse from whichever model answered

        Raises:
            Exception: the permanent error, or the last model's error
        """
        messages = [{"role": "user", "content": prompt}]
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})
        prompt_hash = hashlib.sha256(f"{system_prompt or ''}|||{prompt}".encode()).hexdigest()[:16]

        models = [self.model_name] + self.fallback_models
        for position, model_name in enumerate(models):
            kwargs = self._request_kwargs(model_name, messages, temperature, max_tokens, json_mode, retry_on_error)
            try:
                response = await acompletion(**kwargs)
                return self._to_response(model_name, response, prompt_hash)
            except Exception as e:
                if is_permanent_error(e):
                    logger.error(f"Permanent error from {model_name}, not falling back: {e}")
                    raise
                if position == len(models) - 1:
                    raise
                kind = "Transient" if is_transient_error(e) else "Unexpected"
                logger.warning(f"{kind} error from {model_name} ({type(e).__name__}: {e}), trying {models[position + 1]}")

        raise RuntimeError("No models configured")

    def _request_kwargs(
        self,
        model_name: str,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: Optional[int],
        json_mode: bool,
        retry_on_error: bool,
    ) -> Dict[str, Any]:
        spec = MODEL_REGISTRY[model_name]
        kwargs: Dict[str, Any] = {
            "model": spec.litellm_name,
            "messages": messages,
            "temperature": spec.fixed_temperature if spec.fixed_temperature is not None else temperature,
            "timeout": LLM_TIMEOUT_SECONDS,
            "drop_params": True,
        }
        if max_tokens and spec.accepts_max_tokens:
            kwargs["max_tokens"] = max_tokens
        if json_mode and spec.json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if retry_on_error:
            kwargs["num_retries"] = 2
        api_key = self.api_keys.get(spec.provider)
        if api_key:
            kwargs["api_key"] = api_key
        return kwargs

    def _to_response(self, model_name: str, response: Any, prompt_hash: str) -> LLMResponse:
        if not response.choices:
            response_id = getattr(response, "id", None)
            raise RuntimeError(f"LLM API returned empty choices array (model={model_name}, id={response_id})")

        choice = response.choices[0]
        usage = getattr(response, "usage", None)
        input_tokens = getattr(usage, "prompt_tokens", 0) or 0
        output_tokens = getattr(usage, "completion_tokens", 0) or 0

        try:
            cost = completion_cost(completion_response=response)
        except Exception as e:
            logger.debug(f"LiteLLM could not price {model_name} ({e}), using registry prices")
            cost = estimate_cost(model_name, input_tokens, output_tokens)

        return LLMResponse(
            text=choice.message.content or "",
            model=model_name,
            provider=MODEL_REGISTRY[model_name].provider,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost or 0.0,
            finish_reason=getattr(choice, "finish_reason", None),
            prompt_hash=prompt_hash,
            task=self.task.value if self.task else None,
            metadata={"response_id": getattr(response, "id", None)},
        )
