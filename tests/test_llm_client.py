"""Tests for the LLM and image clients."""

import json

import httpx
import pytest

from services.content_service.errors import (
    ImageGenerationError, LLMRequestError, LLMResponseError, LLMTransientError
)
from services.content_service.image_client import ImageClient
from services.content_service.llm_client import (
    CompletionBackend, HTTPCompletionBackend, LLMClient, LLMRequest, normalize_response
)


def request(model="gpt-test"):
    return LLMRequest(model=model, messages=[{"role": "user", "content": "hi"}])


def gateway(status_code=200, body=None, text=None):
    seen = []

    def handler(http_request: httpx.Request) -> httpx.Response:
        seen.append(http_request)
        if text is not None:
            return httpx.Response(status_code, text=text)
        return httpx.Response(status_code, json=body)

    backend = HTTPCompletionBackend("http://llm.local/", api_key="secret",
                                    transport=httpx.MockTransport(handler))
    return backend, seen


class FakeBackend(CompletionBackend):
    def __init__(self, name, outcome):
        self.name = name
        self.outcome = outcome
        self.calls = 0

    async def complete(self, request):
        self.calls += 1
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


class TestNormalize:
    def test_chat_completion_shape(self):
        raw = {
            "model": "gpt-4o",
            "choices": [{"message": {"role": "assistant", "content": "Hello"}}],
            "usage": {"prompt_tokens": 5, "completion_tokens": 7},
        }
        response = normalize_response(raw, "fallback")
        assert response.content == "Hello"
        assert response.model == "gpt-4o"
        assert response.usage.total_tokens == 12

    def test_gateway_shape(self):
        response = normalize_response({"content": "Hi", "tokens_used": 40, "cached": True}, "m")
        assert response.model == "m"
        assert response.usage.total_tokens == 40
        assert response.cached is True

    def test_empty_text_is_response_error(self):
        with pytest.raises(LLMResponseError):
            normalize_response({"choices": [{"message": {"content": "  "}}]}, "m")
        with pytest.raises(LLMResponseError):
            normalize_response(["not", "a", "dict"], "m")


class TestHTTPBackend:
    @pytest.mark.asyncio
    async def test_posts_request_and_unwraps_envelope(self):
        backend, seen = gateway(body={"success": True, "data": {"content": "Text", "model": "m"}})
        client = LLMClient([backend])

        response = await client.complete(request())

        assert response.content == "Text"
        assert seen[0].url.path == "/api/v1/llm/chat"
        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert json.loads(seen[0].content)["model"] == "gpt-test"
        await client.close()

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        backend, _ = gateway(status_code=503, body={"error": "busy"})
        with pytest.raises(LLMTransientError):
            await backend.complete(request())

    @pytest.mark.asyncio
    async def test_rate_limit_is_transient(self):
        backend, _ = gateway(status_code=429, body={"error": "slow down"})
        with pytest.raises(LLMTransientError):
            await backend.complete(request())

    @pytest.mark.asyncio
    async def test_bad_request_is_not_transient(self):
        backend, _ = gateway(status_code=400, body={"error": "bad"})
        with pytest.raises(LLMRequestError) as exc_info:
            await backend.complete(request())
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        backend, _ = gateway(text="<html>oops</html>")
        with pytest.raises(LLMResponseError):
            await backend.complete(request())


class TestFallback:
    @pytest.mark.asyncio
    async def test_falls_back_on_transient_error(self):
        first = FakeBackend("first", LLMTransientError("down"))
        second = FakeBackend("second", {"content": "from second"})

        response = await LLMClient([first, second]).complete(request())

        assert response.content == "from second"
        assert (first.calls, second.calls) == (1, 1)

    @pytest.mark.asyncio
    async def test_falls_back_on_unknown_model(self):
        first = FakeBackend("first", LLMRequestError("no such model", status_code=404))
        second = FakeBackend("second", {"content": "ok"})
        assert (await LLMClient([first, second]).complete(request())).content == "ok"

    @pytest.mark.asyncio
    async def test_request_error_stops_fallback(self):
        first = FakeBackend("first", LLMRequestError("bad", status_code=400))
        second = FakeBackend("second", {"content": "ok"})
        with pytest.raises(LLMRequestError):
            await LLMClient([first, second]).complete(request())
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_last_error_raised_when_all_fail(self):
        backends = [FakeBackend("a", LLMTransientError("a down")), FakeBackend("b", LLMTransientError("b down"))]
        with pytest.raises(LLMTransientError, match="b down"):
            await LLMClient(backends).complete(request())

    @pytest.mark.asyncio
    async def test_no_backends(self):
        with pytest.raises(LLMRequestError):
            await LLMClient([]).complete(request())


class TestImageClient:
    @pytest.mark.asyncio
    async def test_returns_first_image(self):
        def handler(http_request):
            assert json.loads(http_request.content)["aspect_ratio"] == "1:1"
            return httpx.Response(200, json={"images": [{"image_url": "https://cdn/x.png", "width": 512}]})

        client = ImageClient("http://images.local", transport=httpx.MockTransport(handler))
        image = await client.generate("a desk", aspect_ratio="1:1")
        assert image["image_url"] == "https://cdn/x.png"
        await client.close()

    @pytest.mark.asyncio
    async def test_errors_become_image_generation_errors(self):
        client = ImageClient("http://images.local",
                             transport=httpx.MockTransport(lambda r: httpx.Response(500, text="nope")))
        with pytest.raises(ImageGenerationError, match="HTTP 500"):
            await client.generate("a desk")

        empty = ImageClient("http://images.local",
                            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"images": []})))
        with pytest.raises(ImageGenerationError, match="no image"):
            await empty.generate("a desk")


class TestMalformedResponses:
    @pytest.mark.parametrize("raw", [
        {"choices": ["oops"]},
        {"choices": [{"message": "plain text"}]},
        {"content": "Hi", "usage": {"total_tokens": "n/a"}},
        {"content": "Hi", "usage": ["not", "an", "object"]},
    ])
    def test_unexpected_shapes_are_response_errors(self, raw):
        with pytest.raises(LLMResponseError):
            normalize_response(raw, "m")

    def test_non_string_model_falls_back_to_requested(self):
        assert normalize_response({"content": "Hi", "model": 7}, "m").model == "m"

    @pytest.mark.asyncio
    async def test_malformed_gateway_body_surfaces_as_response_error(self):
        backend, _ = gateway(body={"choices": ["oops"]})
        with pytest.raises(LLMResponseError):
            await LLMClient([backend]).complete(request())
