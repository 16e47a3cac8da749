"""Provider selection and fallback for the text-generation service."""

from enum import Enum
from typing import Optional, Union

from cvtailor.core.config import LLMSettings
from cvtailor.core.exceptions import ConfigurationError, ServiceError
from cvtailor.core.llm_client import GeminiClient, OpenRouterClient
from cvtailor.schemas.llm import CompletionOptions, CompletionRequest
from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)


class LLMProvider(str, Enum):
    """Supported providers."""
    GEMINI = "gemini"
    OPENROUTER = "openrouter"


class UnifiedLLMClient:
    """Wraps one primary provider client and an optional Gemini fallback.

    The fallback is tried once when the primary client raises; if both fail
    a ServiceError chained to the fallback failure is raised.
    """

    def __init__(
        self,
        provider: Union[str, LLMProvider],
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: int = 60,
        max_retries: int = 3,
        fallback_to_gemini: bool = False,
        gemini_api_key: Optional[str] = None,
        gemini_model: Optional[str] = None,
    ):
        try:
            self.provider = LLMProvider(provider)
        except ValueError as e:
            raise ConfigurationError(f"Unsupported provider: {provider}", e)
        self.model = model
        self.fallback_client: Optional[GeminiClient] = None

        if self.provider == LLMProvider.GEMINI:
            self.client = GeminiClient(api_key=api_key, model=model, max_retries=max_retries)
            LOGGER.info(f"Initialized unified LLM with Gemini provider (model: {model})")
            return

        self.client = OpenRouterClient(
            api_key=api_key,
            model=model,
            base_url=base_url or "https://openrouter.ai/api/v1/chat/completions",
            timeout=timeout,
            max_retries=max_retries,
        )
        if fallback_to_gemini:
            if not gemini_api_key:
                raise ConfigurationError("gemini_api_key required when fallback_to_gemini=True")
            self.fallback_client = GeminiClient(
                api_key=gemini_api_key,
                model=gemini_model or "gemini-2.0-flash",
                max_retries=max_retries,
            )
            LOGGER.info(
                f"Initialized unified LLM with OpenRouter provider (model: {model}) "
                f"and Gemini fallback (model: {self.fallback_client.model})"
            )
        else:
            LOGGER.info(f"Initialized unified LLM with OpenRouter provider (model: {model})")

    async def complete(self, options: CompletionOptions, request: CompletionRequest) -> str:
        """Complete with the primary provider, falling back to Gemini if configured."""
        try:
            return await self.client.complete(options, request)
        except ServiceError as e:
            if self.fallback_client is None:
                raise
            LOGGER.warning(f"Primary provider ({self.provider.value}) failed, attempting Gemini fallback: {e}")

        # The per-call key belongs to the primary provider
        fallback_options = options.model_copy(update={"api_key": None})
        fallback_request = request.model_copy(update={"model_id": None})
        try:
            return await self.fallback_client.complete(fallback_options, fallback_request)
        except ServiceError as fallback_error:
            LOGGER.error(f"Fallback to Gemini also failed: {fallback_error}")
            raise ServiceError(
                f"Both primary ({self.provider.value}) and fallback (Gemini) failed",
                fallback_error,
            ) from fallback_error


def create_llm_client(
    provider: Union[str, LLMProvider],
    api_key: str,
    model: str,
    base_url: Optional[str] = None,
    timeout: int = 60,
    max_retries: int = 3,
    fallback_to_gemini: bool = False,
    gemini_api_key: Optional[str] = None,
    gemini_model: Optional[str] = None,
) -> UnifiedLLMClient:
    """Factory function to create a unified LLM client."""
    return UnifiedLLMClient(
        provider=provider,
        api_key=api_key,
        model=model,
        base_url=base_url,
        timeout=timeout,
        max_retries=max_retries,
        fallback_to_gemini=fallback_to_gemini,
        gemini_api_key=gemini_api_key,
        gemini_model=gemini_model,
    )


def create_llm_client_from_settings(settings: LLMSettings) -> UnifiedLLMClient:
    """Create a unified LLM client from provider settings.

    Picks the API key, model and URL that match ``settings.provider``.

    Raises:
        ConfigurationError: If the provider is unknown or its API key is empty
    """
    provider_name = (settings.provider or "").strip().lower()
    try:
        provider = LLMProvider(provider_name)
    except ValueError as e:
        raise ConfigurationError(f"Unsupported provider: {settings.provider}", e)

    api_key = settings.api_key.strip()
    if not api_key:
        env_name = "GEMINI_API_KEY" if provider == LLMProvider.GEMINI else "OPENROUTER_API_KEY"
        raise ConfigurationError(
            f"API key required when provider='{provider.value}'. "
            f"Please set {env_name} environment variable."
        )

    fallback_key = settings.gemini_api_key.strip() or None
    enable_fallback = provider == LLMProvider.OPENROUTER and settings.enable_fallback

    return create_llm_client(
        provider=provider,
        api_key=api_key,
        model=settings.model,
        base_url=settings.openrouter_api_url if provider == LLMProvider.OPENROUTER else None,
        timeout=settings.request_timeout_seconds,
        max_retries=settings.max_retries,
        fallback_to_gemini=enable_fallback,
        gemini_api_key=fallback_key if enable_fallback else None,
        gemini_model=settings.gemini_model if enable_fallback else None,
    )
