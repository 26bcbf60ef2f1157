import asyncio
from types import SimpleNamespace

import httpx
import pytest
from openai import APITimeoutError

from src.functions.contact_pipeline.core.contracts import AIServiceError
from src.functions.contact_pipeline.core.llm import ContactAIClient


class FakeEmbeddings:
    def __init__(self, failures=0):
        self.failures = failures
        self.calls = 0

    def create(self, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/embeddings"))
        return SimpleNamespace(
            data=[SimpleNamespace(embedding=[0.5] * kwargs["dimensions"])],
            usage=SimpleNamespace(total_tokens=3),
        )


def _client(embeddings, max_retries=3):
    sleeps = []
    client = ContactAIClient(
        client=SimpleNamespace(embeddings=embeddings),
        embedding_dimensions=4,
        max_retries=max_retries,
        sleep=sleeps.append,
    )
    return client, sleeps


def test_concurrent_calls_keep_exact_usage_counts():
    client, _ = _client(FakeEmbeddings())

    async def scenario():
        await asyncio.gather(*(asyncio.to_thread(client.embed, f"profile {n}") for n in range(200)))

    asyncio.run(scenario())

    assert client.get_usage_stats() == {"total_requests": 200, "failed_requests": 0, "total_tokens": 600}


def test_timeouts_are_retried_with_backoff():
    embeddings = FakeEmbeddings(failures=2)
    client, sleeps = _client(embeddings)

    vector = client.embed("Partner at Example Ventures")

    assert vector == [0.5] * 4
    assert sleeps == [1, 2]
    assert client.get_usage_stats()["failed_requests"] == 2
    assert client.get_usage_stats()["total_requests"] == 1


def test_exhausted_retries_raise_ai_service_error():
    client, sleeps = _client(FakeEmbeddings(failures=5), max_retries=2)

    with pytest.raises(AIServiceError, match="embedding failed after 2 attempts"):
        client.embed("Partner at Example Ventures")

    assert sleeps == [1]
