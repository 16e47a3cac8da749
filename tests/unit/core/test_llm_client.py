"""Tests for provider clients and the HTTP transport."""

from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from cvtailor.core.exceptions import ServiceError, ServiceTimeoutError
from cvtailor.core.llm_client import JSON_ONLY_INSTRUCTION, BaseLLMClient, GeminiClient, OpenRouterClient
from cvtailor.schemas.llm import ChatMessage, CompletionOptions, CompletionRequest

URL = "https://openrouter.test/api/v1/chat/completions"


def _response(status_code: int, body=None) -> httpx.Response:
    return httpx.Response(status_code, json=body or {}, request=httpx.Request("POST", URL))


@pytest.fixture
def json_request() -> CompletionRequest:
    return CompletionRequest(
        messages=[
            ChatMessage(role="system", content="You are a CV parser."),
            ChatMessage(role="user", content="CV text"),
        ],
        json_mode=True,
    )


class TestBaseLLMClient:
    """Retry policy of the HTTP transport."""

    @pytest.mark.asyncio
    async def test_success(self, mock_httpx_client):
        mock_httpx_client.post = AsyncMock(return_value=_response(200, {"ok": True}))
        with patch("cvtailor.core.llm_client.httpx.AsyncClient", return_value=mock_httpx_client):
            body = await BaseLLMClient("key", URL).post_json({"a": 1}, api_key="override")

        assert body == {"ok": True}
        headers = mock_httpx_client.post.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer override"

    @pytest.mark.asyncio
    async def test_client_error_fails_fast(self, mock_httpx_client):
        mock_httpx_client.post = AsyncMock(return_value=_response(401, {"error": "bad key"}))
        with patch("cvtailor.core.llm_client.httpx.AsyncClient", return_value=mock_httpx_client):
            with pytest.raises(ServiceError, match="rejected request \\(401\\)"):
                await BaseLLMClient("key", URL, retry_delay=0).post_json({})

        assert mock_httpx_client.post.call_count == 1

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, mock_httpx_client):
        mock_httpx_client.post = AsyncMock(side_effect=[_response(503), _response(429), _response(200, {"ok": 1})])
        with patch("cvtailor.core.llm_client.httpx.AsyncClient", return_value=mock_httpx_client):
            body = await BaseLLMClient("key", URL, max_retries=3, retry_delay=0).post_json({})

        assert body == {"ok": 1}
        assert mock_httpx_client.post.call_count == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, mock_httpx_client):
        mock_httpx_client.post = AsyncMock(return_value=_response(500))
        with patch("cvtailor.core.llm_client.httpx.AsyncClient", return_value=mock_httpx_client):
            with pytest.raises(ServiceError, match="after retries"):
                await BaseLLMClient("key", URL, max_retries=2, retry_delay=0).post_json({})

        assert mock_httpx_client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_timeouts(self, mock_httpx_client):
        mock_httpx_client.post = AsyncMock(side_effect=httpx.ReadTimeout("slow"))
        with patch("cvtailor.core.llm_client.httpx.AsyncClient", return_value=mock_httpx_client):
            with pytest.raises(ServiceTimeoutError):
                await BaseLLMClient("key", URL, max_retries=2, retry_delay=0).post_json({})


class TestOpenRouterClient:
    """Payload building and reply parsing."""

    def test_json_mode_payload(self, json_request):
        client = OpenRouterClient(api_key="key", model="google/gemini-2.0-flash-001")
        payload = client.build_payload(CompletionOptions(temperature=0.1, max_output_tokens=512), json_request)

        assert payload["model"] == "google/gemini-2.0-flash-001"
        assert payload["temperature"] == 0.1
        assert payload["max_tokens"] == 512
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["messages"][0]["content"].endswith(JSON_ONLY_INSTRUCTION)
        assert json_request.messages[0].content == "You are a CV parser."

    def test_plain_payload(self):
        client = OpenRouterClient(api_key="key", model="m")
        request = CompletionRequest(model_id="other/model", messages=[ChatMessage(role="user", content="Hi")])
        payload = client.build_payload(CompletionOptions(), request)

        assert payload["model"] == "other/model"
        assert "response_format" not in payload
        assert payload["messages"] == [{"role": "user", "content": "Hi"}]

    @pytest.mark.asyncio
    async def test_complete(self, json_request):
        client = OpenRouterClient(api_key="key", model="m")
        client.transport.post_json = AsyncMock(return_value={"choices": [{"message": {"content": '{"a": 1}'}}]})

        assert await client.complete(CompletionOptions(api_key="k2"), json_request) == '{"a": 1}'
        assert client.transport.post_json.call_args.kwargs["api_key"] == "k2"

    @pytest.mark.asyncio
    async def test_missing_choices(self, json_request):
        client = OpenRouterClient(api_key="key", model="m")
        client.transport.post_json = AsyncMock(return_value={"error": "overloaded"})

        with pytest.raises(ServiceError, match="Invalid response format"):
            await client.complete(CompletionOptions(), json_request)


class TestGeminiClient:
    """Gemini client with an injected SDK client."""

    @pytest.fixture
    def sdk(self):
        sdk = Mock()
        sdk.aio.models.generate_content = AsyncMock(return_value=Mock(text='{"full_name": "Jane"}'))
        return sdk

    def test_build_config(self, sdk, json_request):
        client = GeminiClient(api_key="key", client=sdk)
        config = client.build_config(CompletionOptions(max_output_tokens=1024), json_request)

        assert config.max_output_tokens == 1024
        assert config.response_mime_type == "application/json"
        assert config.system_instruction == "You are a CV parser."

    @pytest.mark.asyncio
    async def test_complete(self, sdk, json_request):
        client = GeminiClient(api_key="key", model="gemini-2.0-flash", client=sdk)
        result = await client.complete(CompletionOptions(), json_request)

        assert result == '{"full_name": "Jane"}'
        kwargs = sdk.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.0-flash"
        assert kwargs["contents"] == "CV text"

    @pytest.mark.asyncio
    async def test_empty_text(self, sdk, json_request):
        sdk.aio.models.generate_content = AsyncMock(return_value=Mock(text=None))
        assert await GeminiClient(api_key="key", client=sdk).complete(CompletionOptions(), json_request) == ""

    @pytest.mark.asyncio
    async def test_retries_then_fails(self, sdk, json_request):
        sdk.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("quota"))
        client = GeminiClient(api_key="key", max_retries=2, retry_delay=0, client=sdk)

        with pytest.raises(ServiceError, match="quota"):
            await client.complete(CompletionOptions(), json_request)
        assert sdk.aio.models.generate_content.call_count == 2
