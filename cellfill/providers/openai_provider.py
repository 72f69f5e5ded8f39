"""
OpenAI and Claude providers, routed through the LiteLLM client in JSON mode.

Has no provenance channel; citations only come from URLs the model puts
in its reply.
"""

import logging
from typing import Optional

from ..config import get_api_key
from ..constants import DEFAULT_MAX_OUTPUT_TOKENS
from ..errors import ProviderUnavailableError
from ..llm.llm_client import (
    MODEL_CLAUDE_HAIKU_45,
    MODEL_GPT4O_MINI,
    MODEL_REGISTRY,
    PROVIDER_ENV_VARS,
    LLMClient,
    LLMTask,
)
from .base import AIProvider, ProviderReply

logger = logging.getLogger(__name__)


class OpenAIProvider(AIProvider):
    """Enrichment via an OpenAI chat model (or any registry model LiteLLM can reach)."""

    name = "openai"
    default_model = MODEL_GPT4O_MINI

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        llm_client: Optional[LLMClient] = None,
        **kwargs,
    ):
        super().__init__(model=model, **kwargs)
        if llm_client is not None:
            self.llm = llm_client
            return

        spec = MODEL_REGISTRY.get(self.model)
        if spec is None:
            raise ProviderUnavailableError(f"Unknown model for {self.name}: {self.model}")
        env_var = PROVIDER_ENV_VARS[spec.provider][0]
        self.api_key = api_key or get_api_key(*PROVIDER_ENV_VARS[spec.provider])
        if not self.api_key:
            raise ProviderUnavailableError(
                f"API key not found. Set {env_var} in environment, or pass api_key parameter."
            )
        self.llm = LLMClient(task=LLMTask.CELL_ENRICHMENT, model=self.model, api_keys={spec.provider: self.api_key})

    async def _complete(
        self,
        system_prompt: str,
        user_prompt: str,
        use_search: bool = True,
        json_only: bool = False,
    ) -> ProviderReply:
        response = await self.llm.generate(
            user_prompt,
            system_prompt=system_prompt,
            temperature=0.0 if not use_search else 0.1,
            max_tokens=DEFAULT_MAX_OUTPUT_TOKENS,
            json_mode=True,
        )
        logger.debug(f"OpenAI call: {response.input_tokens}→{response.output_tokens} tokens, ${response.cost_usd:.6f}")
        return ProviderReply(text=response.text, cost=response.cost_usd, model=response.model)


class ClaudeProvider(OpenAIProvider):
    """Same LiteLLM path as OpenAIProvider, pointed at an Anthropic model."""

    name = "claude"
    default_model = MODEL_CLAUDE_HAIKU_45
