"""Tests for the OpenRouter-backed summarizer engine."""
import json

import httpx
import pytest

from smartshare_panel.summaries.engine import (
    SHARED_CONTEXT,
    SUMMARIZE_CONTEXT,
    Availability,
    EngineRuntimeError,
    EngineUnavailableError,
    OpenRouterEngine,
    SummarizerOptions,
)
from smartshare_panel.summaries.openrouter_client import (
    AuthenticationError,
    ClientConfigurationError,
    OpenRouterClient,
    OpenRouterError,
    RateLimitError,
    TransientError,
)
from smartshare_panel.summaries.types import SummarizationSettings, SummaryLength, SummaryType

MODEL = "x-ai/grok-4-fast:free"


class FakeOpenRouter:
    def __init__(self, models=(MODEL,), reply="- first\n- second"):
        self.models = list(models)
        self.reply = reply
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/models"):
            return httpx.Response(200, json={"data": [{"id": model} for model in self.models]})
        if request.url.path.endswith("/chat/completions"):
            return httpx.Response(
                200,
                json={
                    "choices": [{"message": {"content": self.reply}, "finish_reason": "stop"}],
                    "usage": {"prompt_tokens": 10, "completion_tokens": 5},
                },
            )
        return httpx.Response(404, json={"error": {"message": "not found"}})


def _engine(api, tmp_path=None):
    cache = tmp_path / "_model_catalog.json" if tmp_path else None
    client = OpenRouterClient("test-key", model_cache_path=cache, transport=httpx.MockTransport(api))
    return OpenRouterEngine(client, MODEL), client


def _options(**kwargs):
    return SummarizerOptions.from_settings(SummarizationSettings(**kwargs))


@pytest.mark.asyncio
async def test_engine_without_client_is_unavailable():
    engine = OpenRouterEngine(None, MODEL)

    assert await engine.availability() is Availability.UNAVAILABLE
    with pytest.raises(EngineUnavailableError):
        await engine.create(_options())


@pytest.mark.asyncio
async def test_catalog_fetch_is_reported_as_download(tmp_path):
    api = FakeOpenRouter()
    engine, client = _engine(api, tmp_path)
    progress = []

    assert await engine.availability() is Availability.AFTER_DOWNLOAD
    await engine.create(_options(), progress.append)

    assert progress == [0.0, 1.0]
    assert await engine.availability() is Availability.AVAILABLE
    assert (tmp_path / "_model_catalog.json").is_file()

    await engine.create(_options(), progress.append)
    assert progress == [0.0, 1.0]
    assert len(api.requests) == 1
    client.close()


@pytest.mark.asyncio
async def test_cached_catalog_skips_download(tmp_path):
    first, first_client = _engine(FakeOpenRouter(), tmp_path)
    await first.create(_options())
    first_client.close()

    api = FakeOpenRouter()
    engine, client = _engine(api, tmp_path)

    assert await engine.availability() is Availability.AVAILABLE
    assert api.requests == []
    client.close()


@pytest.mark.asyncio
async def test_summarize_sends_rendered_prompt():
    api = FakeOpenRouter(reply="  Headline here.  ")
    engine, client = _engine(api)
    session = await engine.create(_options(type=SummaryType.HEADLINE, length=SummaryLength.LONG))

    summary = await session.summarize("Article body text.")

    assert summary == "Headline here."
    payload = json.loads(api.requests[-1].content)
    assert payload["model"] == MODEL
    system, user = payload["messages"]
    assert user == {"role": "user", "content": "Article body text."}
    assert SHARED_CONTEXT in system["content"]
    assert SUMMARIZE_CONTEXT in system["content"]
    assert '"headline"' in system["content"]
    assert "{{" not in system["content"]
    client.close()


@pytest.mark.asyncio
async def test_unknown_model_fails_create():
    engine, client = _engine(FakeOpenRouter(models=["someone/else"]))

    with pytest.raises(EngineRuntimeError, match=MODEL):
        await engine.create(_options())
    client.close()


@pytest.mark.asyncio
async def test_destroyed_session_refuses_work():
    engine, client = _engine(FakeOpenRouter())
    session = await engine.create(_options())
    session.destroy()

    with pytest.raises(EngineRuntimeError):
        await session.summarize("text")
    client.close()


def test_client_returns_reply_text():
    client = OpenRouterClient("k", transport=httpx.MockTransport(FakeOpenRouter(reply="hi")))

    assert client.generate(MODEL, [{"role": "user", "content": "x"}]) == "hi"
    client.close()


@pytest.mark.parametrize(
    "status, body, error",
    [
        (401, {}, AuthenticationError),
        (429, {"error": {"message": "slow down"}}, RateLimitError),
        (503, {}, TransientError),
        (400, {"error": {"message": "bad model"}}, OpenRouterError),
    ],
)
def test_client_maps_http_errors(status, body, error):
    transport = httpx.MockTransport(lambda request: httpx.Response(status, json=body))
    client = OpenRouterClient("k", max_retries=0, transport=transport)

    with pytest.raises(error):
        client.generate(MODEL, [])
    client.close()


def test_client_rejects_reply_without_content():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []}))
    client = OpenRouterClient("k", transport=transport)

    with pytest.raises(ClientConfigurationError):
        client.generate(MODEL, [])
    client.close()
