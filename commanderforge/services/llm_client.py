"""
Text-completion service adapter.

Every pipeline stage talks to the model through `TextCompletionService`.
The production implementation wraps the Anthropic Messages API; tests
substitute a scripted fake.

Model calls are UNRELIABLE collaborators: they may be unavailable, slow,
or return malformed text. Callers own the fallback path.
"""

import logging
from typing import Protocol

import anthropic
import httpx
from anthropic.types import TextBlock

from commanderforge.config import Settings, settings
from commanderforge.models.budget import RequestBudget
from commanderforge.models.failure import ConfigurationError

logger = logging.getLogger(__name__)

# Exceptions a completion call may raise that callers treat as "unavailable".
# Any TextCompletionService may raise these, not only the Anthropic one.
COMPLETION_ERRORS: tuple[type[Exception], ...] = (
    anthropic.APIError,
    httpx.HTTPError,
    TimeoutError,
)


class TextCompletionService(Protocol):
    """Prompt in, text out."""

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str: ...


def _record_token_usage(model: str, input_tokens: int, output_tokens: int) -> None:
    logger.info(
        "token_usage",
        extra={
            "model": model,
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": input_tokens + output_tokens,
        },
    )


class AnthropicCompletionService:
    """
    TextCompletionService backed by the Anthropic Messages API.

    Each instance carries the RequestBudget of ONE build request. Create a
    new instance per build.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        budget: RequestBudget | None = None,
        timeout: float = 60.0,
    ):
        if not api_key:
            raise ConfigurationError(
                "AI service configuration error",
                detail="Anthropic API key not configured",
            )
        self.model = model
        self.budget = budget if budget is not None else RequestBudget()
        self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        """
        Run one completion and return the concatenated text blocks.

        Raises:
            BudgetExceededError: If this build has no LLM calls left
            anthropic.APIError: On transport or API failure
        """
        self.budget.check_call_budget()

        response = await self._client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )

        input_tokens = output_tokens = 0
        if response.usage:
            input_tokens = response.usage.input_tokens
            output_tokens = response.usage.output_tokens
            _record_token_usage(self.model, input_tokens, output_tokens)
        self.budget.record_call(input_tokens, output_tokens)

        text_content = ""
        for block in response.content:
            if isinstance(block, TextBlock):
                text_content += block.text
        return text_content


def create_completion_service(
    budget: RequestBudget | None = None,
    config: Settings = settings,
) -> AnthropicCompletionService | None:
    """
    Build a completion service for one request, or None if LLM is disabled.

    A missing key is not an error here; the generator raises
    ConfigurationError itself while scanning and replacement fall back.
    """
    if not config.anthropic_api_key:
        logger.warning("LLM_DISABLED", extra={"reason": "anthropic_api_key not set"})
        return None
    return AnthropicCompletionService(
        api_key=config.anthropic_api_key,
        model=config.anthropic_model,
        budget=budget,
        timeout=config.http_timeout,
    )
