from __future__ import annotations

import json

import httpx
import pytest

from app.services.credentials import CredentialPool
from app.services.pipeline_exceptions import (
    PipelineConfigurationError,
    RateLimitError,
    TransientPipelineError,
)
from app.services.summarizer import EmptyEnrichment, RepositoryAnalysis, SummarizerService

README = (
    "# Widget\n\n"
    "Widget is a command-line tool that watches log files and turns noisy output into "
    "structured events you can query. It ships with adapters for nginx, postgres and systemd.\n"
)
METADATA = {
    "identifier": "acme/widget",
    "description": "Log watcher",
    "languages": ["Python", "Shell"],
    "topics": ["logging", "cli"],
    "stars": 1200,
}


def _valid_payload(**overrides: str) -> str:
    payload = {
        "summary": "Widget turns log noise into events.",
        "content": "## Overview\n\nWidget watches logs.",
        "experience": "intermediate",
        "usability": "easy",
        "deployment": "easy",
    }
    payload.update(overrides)
    return json.dumps(payload)


class FakeLLM:
    def __init__(self, response: str) -> None:
        self.response = response
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, system: str, prompt: str) -> str:
        self.calls.append((system, prompt))
        return self.response


@pytest.mark.asyncio
async def test_enrich_returns_validated_analysis() -> None:
    llm = FakeLLM(_valid_payload())
    service = SummarizerService(llm_call=llm, credential_pool=CredentialPool.from_keys([]))

    outcome = await service.enrich(README, METADATA)

    assert isinstance(outcome, RepositoryAnalysis)
    assert outcome.summary == "Widget turns log noise into events."
    assert outcome.deployment == "easy"
    _, prompt = llm.calls[0]
    assert "Repository: acme/widget" in prompt
    assert "Languages: Python, Shell" in prompt
    assert "Stars: 1200" in prompt


@pytest.mark.asyncio
async def test_enrich_accepts_fenced_json() -> None:
    llm = FakeLLM("```json\n" + _valid_payload() + "\n```")
    service = SummarizerService(llm_call=llm, credential_pool=CredentialPool.from_keys([]))

    outcome = await service.enrich(README, METADATA)

    assert isinstance(outcome, RepositoryAnalysis)


@pytest.mark.asyncio
async def test_short_readme_is_a_final_empty_outcome_without_llm_call() -> None:
    llm = FakeLLM(_valid_payload())
    service = SummarizerService(llm_call=llm, credential_pool=CredentialPool.from_keys([]))

    short = await service.enrich("# Tiny\n\nToo short.", METADATA)
    missing = await service.enrich(None, METADATA)

    assert isinstance(short, EmptyEnrichment) and short.retryable is False
    assert isinstance(missing, EmptyEnrichment) and missing.retryable is False
    assert llm.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        "not json at all",
        _valid_payload(experience="guru"),
        _valid_payload(summary="   "),
        json.dumps({"summary": "only a summary"}),
    ],
)
async def test_malformed_llm_output_is_retryable_empty(response: str) -> None:
    service = SummarizerService(llm_call=FakeLLM(response), credential_pool=CredentialPool.from_keys([]))

    outcome = await service.enrich(README, METADATA)

    assert isinstance(outcome, EmptyEnrichment)
    assert outcome.retryable is True


def test_summarizer_requires_credentials_without_injected_call() -> None:
    with pytest.raises(PipelineConfigurationError):
        SummarizerService(credential_pool=CredentialPool.from_keys([]))


def test_credential_pool_rotates_every_n_requests() -> None:
    pool = CredentialPool.from_keys(["k1", "k2", " k1 ", None, ""], rotate_every=2)
    used = []
    for _ in range(5):
        key, _, pool = pool.next()
        used.append(key)

    assert len(CredentialPool.from_keys(["k1", "k2", " k1 "])) == 2
    assert used == ["k1", "k1", "k2", "k2", "k1"]


def test_credential_pool_is_immutable_and_rotates_on_demand() -> None:
    pool = CredentialPool.from_keys(["k1", "k2"], rotate_every=10)

    key, count, advanced = pool.next()

    assert (key, count) == ("k1", 1)
    assert pool.request_count == 0
    assert advanced.rotate().next()[0] == "k2"
    assert CredentialPool.from_keys([]).rotate().is_empty


def test_empty_credential_pool_fails_loudly() -> None:
    with pytest.raises(PipelineConfigurationError):
        CredentialPool.from_keys([]).next()


def _provider_service(handler) -> SummarizerService:
    return SummarizerService(
        credential_pool=CredentialPool.from_keys(["k1", "k2"], rotate_every=10),
        base_url="https://llm.example.com/v1",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


@pytest.mark.asyncio
async def test_provider_call_sends_structured_request_and_validates_reply() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "id": "chatcmpl-1",
                "object": "chat.completion",
                "created": 0,
                "model": "test-model",
                "choices": [
                    {
                        "index": 0,
                        "finish_reason": "stop",
                        "message": {"role": "assistant", "content": _valid_payload()},
                    }
                ],
            },
        )

    service = _provider_service(handler)

    outcome = await service.enrich(README, METADATA)

    assert isinstance(outcome, RepositoryAnalysis)
    (request,) = requests
    assert request.url.path == "/v1/chat/completions"
    assert request.headers["authorization"] == "Bearer k1"
    body = json.loads(request.content)
    assert body["response_format"]["type"] == "json_schema"
    assert body["response_format"]["json_schema"]["schema"]["required"] == [
        "summary",
        "content",
        "experience",
        "usability",
        "deployment",
    ]


@pytest.mark.asyncio
async def test_provider_429_rotates_credential_and_keeps_retry_after() -> None:
    keys: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        keys.append(request.headers["authorization"])
        return httpx.Response(
            429,
            headers={"retry-after": "7"},
            json={"error": {"message": "Rate limit reached", "type": "rate_limit_exceeded"}},
        )

    service = _provider_service(handler)

    with pytest.raises(RateLimitError) as excinfo:
        await service.enrich(README, METADATA)

    assert excinfo.value.retry_after == 7.0
    assert keys == ["Bearer k1"]
    assert service.pool.index == 1
    assert service.pool.next()[0] == "k2"


@pytest.mark.asyncio
async def test_provider_server_error_is_transient_without_rotation() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": {"message": "upstream exploded", "type": "server_error"}})

    service = _provider_service(handler)

    with pytest.raises(TransientPipelineError) as excinfo:
        await service.enrich(README, METADATA)

    assert not isinstance(excinfo.value, RateLimitError)
    assert service.pool.index == 0
