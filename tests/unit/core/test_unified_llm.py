"""Test unified LLM client functionality."""

import pytest
from unittest.mock import AsyncMock, patch

from cvtailor.core.config import LLMSettings
from cvtailor.core.exceptions import ConfigurationError, ServiceError
from cvtailor.core.unified_llm import (
    LLMProvider,
    UnifiedLLMClient,
    create_llm_client,
    create_llm_client_from_settings,
)
from cvtailor.schemas.llm import ChatMessage, CompletionOptions, CompletionRequest


@pytest.fixture
def request_pair():
    options = CompletionOptions(api_key="primary-key", max_output_tokens=256)
    request = CompletionRequest(
        model_id="primary/model",
        messages=[ChatMessage(role="user", content="Test prompt")],
    )
    return options, request


def test_unified_llm_with_gemini():
    """Test unified LLM client with Gemini provider."""
    with patch("cvtailor.core.unified_llm.GeminiClient"):
        client = UnifiedLLMClient(provider="gemini", api_key="test_gemini_key", model="gemini-2.0-flash")

    assert client.provider == LLMProvider.GEMINI
    assert client.fallback_client is None


def test_unified_llm_with_openrouter():
    """Test unified LLM client with OpenRouter provider."""
    client = UnifiedLLMClient(
        provider="openrouter",
        api_key="test_openrouter_key",
        model="google/gemini-2.0-flash-001",
        timeout=60,
        max_retries=3,
    )

    assert client.provider == LLMProvider.OPENROUTER
    assert client.fallback_client is None
    assert client.client.transport.base_url == "https://openrouter.ai/api/v1/chat/completions"


def test_unified_llm_with_fallback():
    """Test unified LLM client with fallback enabled."""
    with patch("cvtailor.core.unified_llm.GeminiClient") as mock_gemini:
        client = UnifiedLLMClient(
            provider="openrouter",
            api_key="test_openrouter_key",
            model="google/gemini-2.0-flash-001",
            fallback_to_gemini=True,
            gemini_api_key="test_gemini_key",
        )

    assert client.fallback_client is not None
    mock_gemini.assert_called_once_with(api_key="test_gemini_key", model="gemini-2.0-flash", max_retries=3)


def test_fallback_without_key_is_rejected():
    """Test that fallback needs its own API key."""
    with pytest.raises(ConfigurationError):
        UnifiedLLMClient(provider="openrouter", api_key="key", model="m", fallback_to_gemini=True)


def test_unknown_provider_is_rejected():
    """Test that unknown providers raise ConfigurationError."""
    with pytest.raises(ConfigurationError, match="Unsupported provider"):
        UnifiedLLMClient(provider="anthropic", api_key="key", model="m")


@pytest.mark.asyncio
async def test_unified_llm_complete_openrouter(request_pair):
    """Test completion with OpenRouter provider."""
    with patch("cvtailor.core.unified_llm.OpenRouterClient") as mock_openrouter:
        mock_instance = AsyncMock()
        mock_instance.complete = AsyncMock(return_value="Generated text")
        mock_openrouter.return_value = mock_instance

        client = UnifiedLLMClient(provider="openrouter", api_key="test_key", model="google/gemini-2.0-flash-001")
        result = await client.complete(*request_pair)

    assert result == "Generated text"
    mock_instance.complete.assert_called_once_with(*request_pair)


@pytest.mark.asyncio
async def test_fallback_on_service_error(request_pair):
    """Test that a failing primary falls back to Gemini without the primary's key and model."""
    with patch("cvtailor.core.unified_llm.OpenRouterClient") as mock_openrouter, \
            patch("cvtailor.core.unified_llm.GeminiClient") as mock_gemini:
        primary = AsyncMock()
        primary.complete = AsyncMock(side_effect=ServiceError("rate limited"))
        mock_openrouter.return_value = primary
        fallback = AsyncMock()
        fallback.complete = AsyncMock(return_value="Fallback text")
        mock_gemini.return_value = fallback

        client = UnifiedLLMClient(
            provider="openrouter",
            api_key="test_key",
            model="m",
            fallback_to_gemini=True,
            gemini_api_key="gemini_key",
        )
        result = await client.complete(*request_pair)

    assert result == "Fallback text"
    fallback_options, fallback_request = fallback.complete.call_args.args
    assert fallback_options.api_key is None
    assert fallback_options.max_output_tokens == 256
    assert fallback_request.model_id is None


@pytest.mark.asyncio
async def test_both_providers_failing(request_pair):
    """Test that a failing fallback raises ServiceError."""
    with patch("cvtailor.core.unified_llm.OpenRouterClient") as mock_openrouter, \
            patch("cvtailor.core.unified_llm.GeminiClient") as mock_gemini:
        mock_openrouter.return_value.complete = AsyncMock(side_effect=ServiceError("primary down"))
        mock_gemini.return_value.complete = AsyncMock(side_effect=ServiceError("fallback down"))

        client = UnifiedLLMClient(
            provider="openrouter",
            api_key="test_key",
            model="m",
            fallback_to_gemini=True,
            gemini_api_key="gemini_key",
        )
        with pytest.raises(ServiceError, match="Both primary"):
            await client.complete(*request_pair)


@pytest.mark.asyncio
async def test_no_fallback_reraises(request_pair):
    """Test that without a fallback the primary error propagates."""
    with patch("cvtailor.core.unified_llm.OpenRouterClient") as mock_openrouter:
        mock_openrouter.return_value.complete = AsyncMock(side_effect=ServiceError("primary down"))
        client = UnifiedLLMClient(provider="openrouter", api_key="test_key", model="m")

        with pytest.raises(ServiceError, match="primary down"):
            await client.complete(*request_pair)


def test_create_llm_client_factory():
    """Test factory function for creating unified LLM client."""
    with patch("cvtailor.core.unified_llm.GeminiClient"):
        client = create_llm_client(provider="gemini", api_key="test_key", model="gemini-2.0-flash")

    assert isinstance(client, UnifiedLLMClient)
    assert client.provider == LLMProvider.GEMINI


def test_create_from_settings_requires_key():
    """Test that a missing API key is a configuration error."""
    settings = LLMSettings(provider="openrouter", openrouter_api_key="")
    with pytest.raises(ConfigurationError, match="OPENROUTER_API_KEY"):
        create_llm_client_from_settings(settings)


def test_create_from_settings_unknown_provider():
    """Test that an unknown provider in settings is rejected."""
    with pytest.raises(ConfigurationError):
        create_llm_client_from_settings(LLMSettings(provider="bard", openrouter_api_key="key"))


def test_create_from_settings_with_fallback():
    """Test that settings enable the Gemini fallback for OpenRouter."""
    settings = LLMSettings(
        provider="OpenRouter",
        openrouter_api_key="or-key",
        gemini_api_key="gm-key",
        enable_fallback=True,
        max_retries=5,
    )
    with patch("cvtailor.core.unified_llm.GeminiClient") as mock_gemini:
        client = create_llm_client_from_settings(settings)

    assert client.provider == LLMProvider.OPENROUTER
    assert client.model == settings.openrouter_model
    assert client.client.transport.max_retries == 5
    mock_gemini.assert_called_once_with(api_key="gm-key", model=settings.gemini_model, max_retries=5)


def test_create_from_settings_with_uppercase_provider():
    """Test that a provider spelled in capitals selects its own key and model."""
    settings = LLMSettings(LLM_PROVIDER="GEMINI", GEMINI_API_KEY="g-key")
    with patch("cvtailor.core.unified_llm.GeminiClient") as mock_gemini:
        client = create_llm_client_from_settings(settings)

    assert client.provider == LLMProvider.GEMINI
    assert client.model == "gemini-2.0-flash"
    mock_gemini.assert_called_once_with(api_key="g-key", model="gemini-2.0-flash", max_retries=3)
