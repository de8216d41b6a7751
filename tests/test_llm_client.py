"""Tests for the Anthropic completion adapter."""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from anthropic.types import TextBlock

from commanderforge.config import Settings
from commanderforge.models.budget import BudgetExceededError, RequestBudget
from commanderforge.models.failure import ConfigurationError
from commanderforge.services.llm_client import (
    AnthropicCompletionService,
    create_completion_service,
)


def mock_response(*texts: str, input_tokens: int = 100, output_tokens: int = 50) -> MagicMock:
    blocks = []
    for text in texts:
        block = MagicMock(spec=TextBlock)
        block.text = text
        blocks.append(block)
    response = MagicMock()
    response.content = blocks
    response.usage.input_tokens = input_tokens
    response.usage.output_tokens = output_tokens
    return response


class TestAnthropicCompletionService:
    """AnthropicCompletionService."""

    def test_requires_api_key(self) -> None:
        """Constructing without a key is a configuration error."""
        with pytest.raises(ConfigurationError):
            AnthropicCompletionService(api_key="", model="claude-test")

    async def test_joins_text_blocks(self) -> None:
        """Text blocks are concatenated in order."""
        with patch("commanderforge.services.llm_client.anthropic.AsyncAnthropic") as mock_cls:
            mock_client = MagicMock()
            mock_client.messages.create = AsyncMock(return_value=mock_response("[", "]"))
            mock_cls.return_value = mock_client

            service = AnthropicCompletionService(api_key="test-key", model="claude-test")
            text = await service.complete("system", "user", 1000)

        assert text == "[]"
        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 1000
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "user"}]

    async def test_records_usage_in_budget(self) -> None:
        """Token usage is charged to the build's budget."""
        budget = RequestBudget()
        with patch("commanderforge.services.llm_client.anthropic.AsyncAnthropic") as mock_cls:
            mock_client = MagicMock()
            mock_client.messages.create = AsyncMock(
                return_value=mock_response("ok", input_tokens=1200, output_tokens=300)
            )
            mock_cls.return_value = mock_client

            service = AnthropicCompletionService("test-key", "claude-test", budget=budget)
            await service.complete("s", "u", 100)

        assert budget.llm_calls_used == 1
        assert budget.tokens_used == 1500

    async def test_logs_token_usage(self, caplog: pytest.LogCaptureFixture) -> None:
        """Each call logs a token_usage event."""
        with patch("commanderforge.services.llm_client.anthropic.AsyncAnthropic") as mock_cls:
            mock_client = MagicMock()
            mock_client.messages.create = AsyncMock(return_value=mock_response("ok"))
            mock_cls.return_value = mock_client

            service = AnthropicCompletionService("test-key", "claude-test")
            with caplog.at_level(logging.INFO, logger="commanderforge.services.llm_client"):
                await service.complete("s", "u", 100)

        assert any(record.getMessage() == "token_usage" for record in caplog.records)

    async def test_exhausted_budget_blocks_call(self) -> None:
        """No API call is made once the budget is spent."""
        budget = RequestBudget(max_llm_calls=0)
        with patch("commanderforge.services.llm_client.anthropic.AsyncAnthropic") as mock_cls:
            mock_client = MagicMock()
            mock_client.messages.create = AsyncMock()
            mock_cls.return_value = mock_client

            service = AnthropicCompletionService("test-key", "claude-test", budget=budget)
            with pytest.raises(BudgetExceededError):
                await service.complete("s", "u", 100)

        mock_client.messages.create.assert_not_called()


class TestCreateCompletionService:
    """Factory behavior."""

    def test_disabled_without_key(self) -> None:
        """No key means no service, not an error."""
        assert create_completion_service(config=Settings(anthropic_api_key="")) is None

    def test_uses_configured_model(self) -> None:
        """The configured model and budget are passed through."""
        budget = RequestBudget()
        config = Settings(anthropic_api_key="test-key", anthropic_model="claude-custom")

        with patch("commanderforge.services.llm_client.anthropic.AsyncAnthropic"):
            service = create_completion_service(budget=budget, config=config)

        assert service is not None
        assert service.model == "claude-custom"
        assert service.budget is budget
