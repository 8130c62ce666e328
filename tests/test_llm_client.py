import asyncio
from types import SimpleNamespace

import httpx
import pytest
from google.genai import errors as genai_errors

from merchforge.services import llm_client
from merchforge.services.llm_client import (
    LlmUnavailableError,
    _to_contents,
    chat_completion,
    parse_json_payload,
)

MESSAGES = [
    {"role": "system", "content": "be brief"},
    {"role": "user", "content": "navy tee"},
]


def rate_limited():
    return genai_errors.ClientError(429, {"error": {"code": 429, "message": "quota", "status": "RESOURCE_EXHAUSTED"}})


def server_error():
    return genai_errors.ServerError(503, {"error": {"code": 503, "message": "overloaded", "status": "UNAVAILABLE"}})


def bad_request():
    return genai_errors.ClientError(400, {"error": {"code": 400, "message": "bad", "status": "INVALID_ARGUMENT"}})


class FakeModels:
    """Stands in for ``client.aio.models``; raises or returns *outcomes* in order."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(text=outcome)


class FakeTracer:
    def __init__(self, fail=False):
        self.fail = fail
        self.generations = []

    def start_generation(self, **kwargs):
        if self.fail:
            raise RuntimeError("langfuse down")
        self.generations.append(kwargs)
        return SimpleNamespace(end=lambda: None)


@pytest.fixture
def delays(monkeypatch):
    recorded = []

    async def sleep(seconds):
        recorded.append(seconds)

    monkeypatch.setattr(llm_client.asyncio, "sleep", sleep)
    return recorded


@pytest.fixture
def gemini(monkeypatch, delays):
    monkeypatch.setattr(llm_client, "GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(llm_client, "LLM_MAX_RETRIES", 2)
    monkeypatch.setattr(llm_client, "LLM_RETRY_DELAY_MS", 400)
    monkeypatch.setattr(llm_client, "LANGFUSE_PUBLIC_KEY", "")

    def install(*outcomes):
        models = FakeModels(outcomes)
        monkeypatch.setattr(llm_client, "_client", SimpleNamespace(aio=SimpleNamespace(models=models)))
        return models

    return install


def test_retryable_errors_back_off_linearly(gemini, delays):
    models = gemini(rate_limited(), server_error(), "ok")
    assert asyncio.run(chat_completion(MESSAGES)) == "ok"
    assert len(models.calls) == 3
    assert delays == [0.4, 0.8]


def test_transport_errors_are_retried(gemini, delays):
    models = gemini(httpx.ConnectError("connection refused"), '{"a": 1}')
    assert asyncio.run(chat_completion(MESSAGES, json_mode=True)) == '{"a": 1}'
    assert len(models.calls) == 2
    assert delays == [0.4]


def test_client_errors_are_not_retried(gemini, delays):
    models = gemini(bad_request(), "never reached")
    with pytest.raises(LlmUnavailableError):
        asyncio.run(chat_completion(MESSAGES))
    assert len(models.calls) == 1
    assert delays == []


def test_exhausted_retries_raise_unavailable(gemini, delays):
    models = gemini(server_error(), server_error(), server_error(), "too late")
    with pytest.raises(LlmUnavailableError) as excinfo:
        asyncio.run(chat_completion(MESSAGES))
    assert isinstance(excinfo.value.__cause__, genai_errors.ServerError)
    assert len(models.calls) == 3
    assert delays == [0.4, 0.8]


def test_missing_key_raises_unavailable(monkeypatch):
    monkeypatch.setattr(llm_client, "GEMINI_API_KEY", "")
    monkeypatch.setattr(llm_client, "_client", None)
    with pytest.raises(LlmUnavailableError, match="GEMINI_API_KEY"):
        asyncio.run(chat_completion(MESSAGES))


def test_request_config(gemini):
    models = gemini("{}")
    asyncio.run(chat_completion(MESSAGES, json_mode=True))
    call = models.calls[0]
    assert call["model"] == llm_client.GEMINI_CHAT_MODEL
    assert call["config"].system_instruction == "be brief"
    assert call["config"].response_mime_type == "application/json"
    assert [c.role for c in call["contents"]] == ["user"]


def test_to_contents_roles():
    system, contents = _to_contents(
        [
            {"role": "system", "content": "rules"},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
            {"role": "system", "content": "fix your JSON"},
        ]
    )
    assert system == "rules"
    assert [c.role for c in contents] == ["user", "model", "user"]
    assert contents[2].parts[0].text == "SYSTEM: fix your JSON"


def test_to_contents_system_only_becomes_user_turn():
    system, contents = _to_contents([{"role": "system", "content": "rules"}])
    assert system is None
    assert contents[0].role == "user"
    assert contents[0].parts[0].text == "rules"


def test_successful_call_is_traced(gemini, monkeypatch):
    tracer = FakeTracer()
    monkeypatch.setattr(llm_client, "LANGFUSE_PUBLIC_KEY", "pk")
    monkeypatch.setattr(llm_client, "LANGFUSE_SECRET_KEY", "sk")
    monkeypatch.setattr(llm_client, "_langfuse", tracer)
    gemini("ok")

    asyncio.run(chat_completion(MESSAGES, json_mode=True))

    [generation] = tracer.generations
    assert generation["name"] == "chatCompletion"
    assert generation["input"] == MESSAGES
    assert generation["output"] == "ok"
    assert generation["metadata"] == {"provider": "gemini", "responseFormat": "json"}
    assert generation["level"] is None


def test_failed_call_is_traced_as_error(gemini, monkeypatch):
    tracer = FakeTracer()
    monkeypatch.setattr(llm_client, "LANGFUSE_PUBLIC_KEY", "pk")
    monkeypatch.setattr(llm_client, "LANGFUSE_SECRET_KEY", "sk")
    monkeypatch.setattr(llm_client, "_langfuse", tracer)
    gemini(bad_request())

    with pytest.raises(LlmUnavailableError):
        asyncio.run(chat_completion(MESSAGES))
    assert tracer.generations[0]["level"] == "ERROR"
    assert "400" in tracer.generations[0]["status_message"]


def test_tracing_errors_do_not_break_the_call(gemini, monkeypatch):
    monkeypatch.setattr(llm_client, "LANGFUSE_PUBLIC_KEY", "pk")
    monkeypatch.setattr(llm_client, "LANGFUSE_SECRET_KEY", "sk")
    monkeypatch.setattr(llm_client, "_langfuse", FakeTracer(fail=True))
    gemini("ok")
    assert asyncio.run(chat_completion(MESSAGES)) == "ok"


def test_tracing_is_off_without_keys(monkeypatch):
    monkeypatch.setattr(llm_client, "LANGFUSE_PUBLIC_KEY", "")
    monkeypatch.setattr(llm_client, "_langfuse", None)
    assert llm_client._get_tracer() is None


@pytest.mark.parametrize(
    "text, expected",
    [
        ('{"assistant": "hi"}', {"assistant": "hi"}),
        ('```json\n{"assistant": "hi"}\n```', {"assistant": "hi"}),
        ('Sure! {"assistant": "hi", "updates": {}} Hope that helps.', {"assistant": "hi", "updates": {}}),
        ("Scores: [1, 2, 3] done", [1, 2, 3]),
        ('{assistant: "hi", updates: {text: "Go"}}', {"assistant": "hi", "updates": {"text": "Go"}}),
        ('{assistant: "Nice, note: navy", updates: {}}', {"assistant": "Nice, note: navy", "updates": {}}),
        ('{assistant: "say \\"a, b: c\\"", updates: {}}', {"assistant": 'say "a, b: c"', "updates": {}}),
        ("no json here", None),
        ("   ", None),
        (None, None),
    ],
)
def test_parse_json_payload(text, expected):
    assert parse_json_payload(text) == expected
