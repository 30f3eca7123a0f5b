from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from groq import APIError

from studytree.clients import CompletionClient, check_configuration
from studytree.errors import ConfigurationError, ServiceError


def _response(content):
    choice = MagicMock()
    choice.message.content = content
    resp = MagicMock()
    resp.choices = [choice]
    return resp


def _mock_sdk(create):
    sdk = MagicMock()
    sdk.chat.completions.create = create
    return sdk


class TestConfiguration:
    def test_missing_key(self):
        with pytest.raises(ConfigurationError):
            check_configuration("")

    def test_key_present(self):
        check_configuration("gsk_test")

    @pytest.mark.anyio
    async def test_complete_without_key(self):
        client = CompletionClient(api_key="")
        with pytest.raises(ConfigurationError):
            await client.complete([{"role": "user", "content": "hi"}])


class TestComplete:
    @pytest.mark.anyio
    async def test_returns_content(self):
        create = AsyncMock(return_value=_response("Hello there"))
        with patch("studytree.clients.completion.AsyncGroq", return_value=_mock_sdk(create)):
            client = CompletionClient(model="test-model", api_key="k")
            text = await client.complete([{"role": "user", "content": "hi"}], 800)

        assert text == "Hello there"
        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["max_tokens"] == 800
        assert kwargs["temperature"] == 0.7

    @pytest.mark.anyio
    async def test_api_error_becomes_service_error(self):
        request = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
        create = AsyncMock(side_effect=APIError("boom", request, body=None))
        with patch("studytree.clients.completion.AsyncGroq", return_value=_mock_sdk(create)):
            client = CompletionClient(api_key="k")
            with pytest.raises(ServiceError, match="Failed to communicate"):
                await client.complete([{"role": "user", "content": "hi"}])

    @pytest.mark.anyio
    async def test_no_choices(self):
        resp = MagicMock()
        resp.choices = []
        create = AsyncMock(return_value=resp)
        with patch("studytree.clients.completion.AsyncGroq", return_value=_mock_sdk(create)):
            with pytest.raises(ServiceError):
                await CompletionClient(api_key="k").complete([])

    def test_with_model_shares_sdk(self):
        with patch("studytree.clients.completion.AsyncGroq") as sdk_cls:
            client = CompletionClient(model="a", api_key="k")
            other = client.with_model("b")

        assert other.default_model == "b"
        assert client.default_model == "a"
        assert other._client is client._client
        sdk_cls.assert_called_once()
