import pytest
from openai import OpenAIError

from config import Config
from llm_client import chat_completion, get_client


class FakeMessage:
    def __init__(self, content, refusal=None):
        self.content = content
        self.refusal = refusal


class FakeChoice:
    def __init__(self, content, finish_reason="stop", refusal=None):
        self.message = FakeMessage(content, refusal)
        self.finish_reason = finish_reason


class FakeResp:
    def __init__(self, choices):
        self.choices = choices


class FakeClient:
    """Returns queued results in order; exceptions in the queue are raised."""

    def __init__(self, *results):
        self.results = list(results)
        self.requests = []
        client = self

        class completions:
            @staticmethod
            async def create(**kwargs):  # type: ignore
                client.requests.append(kwargs)
                result = client.results.pop(0)
                if isinstance(result, Exception):
                    raise result
                return result

        class chat:
            pass

        chat.completions = completions
        self.chat = chat


@pytest.fixture
def llm_config():
    return Config({"OPENAI_MODEL": "test-model", "LLM_RETRY_DELAY_BASE": "0"})


@pytest.mark.asyncio
async def test_returns_stripped_reply_and_uses_configured_model(llm_config):
    client = FakeClient(FakeResp([FakeChoice("  RELEVANT: hi  ")]))

    result = await chat_completion(
        [{"role": "user", "content": "test"}],
        config=llm_config,
        client_override=client,
    )

    assert result == "RELEVANT: hi"
    assert client.requests[0]["model"] == "test-model"
    assert client.requests[0]["messages"] == [{"role": "user", "content": "test"}]


@pytest.mark.asyncio
async def test_list_content_parts_are_joined(llm_config):
    parts = [{"type": "text", "text": "first"}, {"type": "reasoning", "text": ""}, {"type": "text", "text": "second"}]
    client = FakeClient(FakeResp([FakeChoice(parts)]))

    result = await chat_completion([{"role": "user", "content": "x"}], config=llm_config, client_override=client)

    assert result == "first\nsecond"


@pytest.mark.asyncio
async def test_truncated_empty_content_returns_none(llm_config):
    client = FakeClient(FakeResp([FakeChoice([{"type": "reasoning", "text": ""}], finish_reason="length")]))

    result = await chat_completion(
        [{"role": "user", "content": "x"}], config=llm_config, client_override=client
    )

    assert result is None


@pytest.mark.asyncio
async def test_refusal_returns_none(llm_config):
    client = FakeClient(FakeResp([FakeChoice(None, refusal="I can't help with that")]))

    result = await chat_completion([{"role": "user", "content": "x"}], config=llm_config, client_override=client)

    assert result is None


@pytest.mark.asyncio
async def test_transient_error_is_retried(llm_config):
    client = FakeClient(OpenAIError("temporary"), FakeResp([FakeChoice("NOT_RELEVANT")]))

    result = await chat_completion(
        [{"role": "user", "content": "x"}], config=llm_config, client_override=client
    )

    assert result == "NOT_RELEVANT"
    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_exhausted_retries_return_none(llm_config):
    client = FakeClient(OpenAIError("down"), OpenAIError("still down"))

    result = await chat_completion(
        [{"role": "user", "content": "x"}], config=llm_config, client_override=client
    )

    assert result is None
    assert len(client.requests) == 2


@pytest.mark.asyncio
async def test_content_filter_is_not_retried(llm_config):
    error = OpenAIError("filtered")
    error.body = {"error": {"code": "content_filter", "message": "Content filtered"}}
    client = FakeClient(error, FakeResp([FakeChoice("RELEVANT: never reached")]))

    result = await chat_completion(
        [{"role": "user", "content": "x"}], config=Config({"LLM_MAX_RETRIES": "3", "LLM_RETRY_DELAY_BASE": "0"}), client_override=client
    )

    assert result is None
    assert len(client.requests) == 1


@pytest.mark.asyncio
async def test_missing_key_means_no_client():
    config = Config({})
    assert get_client(config) is None
    assert await chat_completion([{"role": "user", "content": "x"}], config=config) is None


@pytest.mark.asyncio
async def test_retry_count_comes_from_configuration():
    config = Config({"LLM_MAX_RETRIES": "0", "LLM_RETRY_DELAY_BASE": "0"})
    client = FakeClient(OpenAIError("down"), FakeResp([FakeChoice("RELEVANT: too late")]))

    result = await chat_completion([{"role": "user", "content": "x"}], config=config, client_override=client)

    assert result is None
    assert len(client.requests) == 1
