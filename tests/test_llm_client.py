import json

import httpx
import pytest

from job_orchestrator.config import Settings
from job_orchestrator.errors import LLMResponseError, LLMStatusError, LLMTransportError
from job_orchestrator.llm_client import AnthropicLLM, FakeLLM, OpenAILLM, build_llm


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_anthropic_request_and_text():
    seen = {}

    def handler(request: httpx.Request):
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"content": [{"type": "text", "text": "[]"}]})

    async with _client(handler) as http:
        llm = AnthropicLLM(http, "sk-test", "claude-test")
        assert await llm.complete("plan this", max_tokens=2000) == "[]"
    assert seen["headers"]["x-api-key"] == "sk-test"
    assert seen["headers"]["anthropic-version"] == "2023-06-01"
    assert seen["body"]["max_tokens"] == 2000
    assert seen["body"]["messages"] == [{"role": "user", "content": "plan this"}]


@pytest.mark.asyncio
async def test_openai_text():
    def handler(request):
        assert request.headers["Authorization"] == "Bearer k"
        return httpx.Response(200, json={"choices": [{"message": {"content": "hi"}}]})

    async with _client(handler) as http:
        assert await OpenAILLM(http, "k", "gpt-test").complete("p") == "hi"


@pytest.mark.asyncio
async def test_non_success_is_status_error():
    async with _client(lambda r: httpx.Response(529, text="overloaded")) as http:
        with pytest.raises(LLMStatusError) as exc:
            await AnthropicLLM(http, "k", "m").complete("p")
    assert exc.value.status_code == 529
    assert exc.value.body == "overloaded"


@pytest.mark.asyncio
async def test_missing_content_is_response_error():
    async with _client(lambda r: httpx.Response(200, json={"content": []})) as http:
        with pytest.raises(LLMResponseError):
            await AnthropicLLM(http, "k", "m").complete("p")


@pytest.mark.asyncio
async def test_network_failure_not_retried_by_default():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    async with _client(handler) as http:
        with pytest.raises(LLMTransportError):
            await AnthropicLLM(http, "k", "m").complete("p")
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_timeout_is_transport_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    async with _client(handler) as http:
        with pytest.raises(LLMTransportError, match="timed out"):
            await AnthropicLLM(http, "k", "m", timeout=0.5).complete("p")


@pytest.mark.asyncio
async def test_fake_llm_scripted_responses():
    llm = FakeLLM(["a", "b"])
    assert [await llm.complete("1"), await llm.complete("2"), await llm.complete("3")] == ["a", "b", "b"]
    assert llm.prompts == ["1", "2", "3"]


@pytest.mark.asyncio
async def test_build_llm_providers():
    async with httpx.AsyncClient() as http:
        assert isinstance(build_llm(http, Settings(LLM_PROVIDER="anthropic")), AnthropicLLM)
        assert isinstance(build_llm(http, Settings(LLM_PROVIDER="OpenAI")), OpenAILLM)
        assert isinstance(build_llm(http, Settings(LLM_PROVIDER="fake")), FakeLLM)
        with pytest.raises(ValueError):
            build_llm(http, Settings(LLM_PROVIDER="palm"))
