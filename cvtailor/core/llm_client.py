"""Provider clients for the text-generation service.

Every client exposes ``complete(options, request) -> str``; the extraction
pipeline only depends on that call shape (see ``TextGenerationService``).
"""

import asyncio
from typing import Any, Dict, List, Optional, Protocol

import httpx
from google import genai
from google.genai import types
from httpx import HTTPStatusError, TimeoutException

from cvtailor.core.exceptions import ServiceError, ServiceTimeoutError
from cvtailor.schemas.llm import CompletionOptions, CompletionRequest
from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)

JSON_ONLY_INSTRUCTION = "Respond with valid JSON only."


class TextGenerationService(Protocol):
    """Anything that turns a completion request into raw text."""

    async def complete(self, options: CompletionOptions, request: CompletionRequest) -> str:
        ...


class BaseLLMClient:
    """HTTP transport with retries and exponential backoff.

    Client errors (4xx other than 429) fail fast; 429, 5xx, timeouts and
    transport errors are retried up to ``max_retries`` times.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: float = 2,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    async def post_json(
        self,
        payload: Dict[str, Any],
        api_key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded JSON body.

        Raises:
            ServiceError: On non-retryable status or once retries are exhausted
            ServiceTimeoutError: If every attempt timed out
        """
        request_headers = {
            "Authorization": f"Bearer {api_key or self.api_key}",
            "Content-Type": "application/json",
        }
        if headers:
            request_headers.update(headers)

        LOGGER.debug(f"POST {self.base_url}", extra={"timeout": self.timeout})

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(self.base_url, headers=request_headers, json=payload)
                    response.raise_for_status()
                    return response.json()
                except HTTPStatusError as e:
                    await self._on_status_error(e, attempt)
                except TimeoutException as e:
                    await self._on_timeout(e, attempt)
                except (httpx.HTTPError, ValueError) as e:
                    await self._on_transport_error(e, attempt)

        raise ServiceError(f"Request to {self.base_url} failed after {self.max_retries} attempts")

    async def _on_status_error(self, error: HTTPStatusError, attempt: int) -> None:
        status_code = error.response.status_code
        body = error.response.text[:500]

        LOGGER.warning(
            f"Generation service returned {status_code} (attempt {attempt + 1}/{self.max_retries})",
            extra={"url": self.base_url, "status_code": status_code, "error_body": body},
        )

        if 400 <= status_code < 500 and status_code != 429:
            raise ServiceError(f"Generation service rejected request ({status_code}): {body}", error)
        if attempt >= self.max_retries - 1:
            raise ServiceError(f"Generation service error {status_code} after retries", error)
        await self._backoff(attempt)

    async def _on_timeout(self, error: TimeoutException, attempt: int) -> None:
        LOGGER.warning(
            f"Generation service timed out (attempt {attempt + 1}/{self.max_retries})",
            extra={"url": self.base_url},
        )
        if attempt >= self.max_retries - 1:
            raise ServiceTimeoutError(f"Generation service timed out after {self.max_retries} attempts", error)
        await self._backoff(attempt)

    async def _on_transport_error(self, error: Exception, attempt: int) -> None:
        LOGGER.warning(
            f"Generation service transport error (attempt {attempt + 1}/{self.max_retries}): {error}",
            extra={"url": self.base_url},
        )
        if attempt >= self.max_retries - 1:
            raise ServiceError(f"Generation service error: {error}", error)
        await self._backoff(attempt)

    async def _backoff(self, attempt: int) -> None:
        await asyncio.sleep(self.retry_delay * (2 ** attempt))


class OpenRouterClient:
    """Chat-completions client for OpenRouter."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://openrouter.ai/api/v1/chat/completions",
        timeout: int = 60,
        max_retries: int = 3,
        retry_delay: float = 2,
    ):
        self.model = model
        self.transport = BaseLLMClient(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )
        LOGGER.info(f"Initialized OpenRouter client with model {self.model}")

    def build_payload(self, options: CompletionOptions, request: CompletionRequest) -> Dict[str, Any]:
        """Translate a completion request into an OpenRouter payload."""
        messages: List[Dict[str, str]] = [m.model_dump() for m in request.messages]

        # Not every routed model honours response_format, so also ask in the system turn
        if request.json_mode:
            if messages and messages[0]["role"] == "system":
                messages[0]["content"] += f"\n\nIMPORTANT: {JSON_ONLY_INSTRUCTION}"
            else:
                messages.insert(0, {"role": "system", "content": JSON_ONLY_INSTRUCTION})

        payload: Dict[str, Any] = {
            "model": request.model_id or self.model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_output_tokens,
        }
        if request.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    async def complete(self, options: CompletionOptions, request: CompletionRequest) -> str:
        payload = self.build_payload(options, request)
        response = await self.transport.post_json(payload, api_key=options.api_key)

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error(f"Unexpected OpenRouter response format: {str(response)[:500]}")
            raise ServiceError("Invalid response format from OpenRouter")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            LOGGER.warning("Empty response from OpenRouter")
        return content


class GeminiClient:
    """Client for the Google Gemini API (async surface of google-genai)."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        max_retries: int = 3,
        retry_delay: float = 1,
        client: Optional[Any] = None,
    ):
        self.model = model
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

        if client is not None:
            self.client = client
        else:
            try:
                self.client = genai.Client(api_key=api_key)
            except Exception as e:
                LOGGER.error(f"Failed to initialize Gemini client: {e}")
                raise ServiceError(f"Failed to initialize Gemini client: {e}", e)
        LOGGER.info(f"Initialized Gemini client with model {self.model}")

    def build_config(self, options: CompletionOptions, request: CompletionRequest) -> types.GenerateContentConfig:
        config = types.GenerateContentConfig(
            temperature=options.temperature,
            max_output_tokens=options.max_output_tokens,
        )
        if request.json_mode:
            config.response_mime_type = "application/json"
        if request.system_instruction:
            config.system_instruction = request.system_instruction
        return config

    async def complete(self, options: CompletionOptions, request: CompletionRequest) -> str:
        config = self.build_config(options, request)

        for attempt in range(self.max_retries):
            try:
                response = await self.client.aio.models.generate_content(
                    model=request.model_id or self.model,
                    contents=request.user_content,
                    config=config,
                )
                if not response.text:
                    LOGGER.warning("Empty response from Gemini")
                    return ""
                return response.text
            except Exception as e:
                LOGGER.warning(f"Gemini API error (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt >= self.max_retries - 1:
                    raise ServiceError(f"Gemini generation failed: {e}", e)
                await asyncio.sleep(self.retry_delay * (2 ** attempt))

        raise ServiceError("Gemini generation failed")
