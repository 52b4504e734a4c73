"""
Tests for retry with exponential backoff and model fallback.
"""
import asyncio

import httpx
import pytest
from conftest import ScriptedLLM, http_error, make_settings

from nutriplan.core.exceptions import AIUnavailableError
from nutriplan.core.llm_client import LLMClient, is_retriable


def test_falls_back_to_second_model_after_retries():
    llm = ScriptedLLM([http_error(503), http_error(503), "from model b"])

    result = asyncio.run(llm.generate_with_fallback("hello"))

    assert result == "from model b"
    assert [c["model"] for c in llm.calls] == ["model-a", "model-a", "model-b"]
    # Backoff only between retries of the same model
    assert llm.sleeps == [0.5]


def test_backoff_doubles_per_attempt():
    llm = ScriptedLLM(
        [httpx.ConnectError("down"), httpx.ConnectError("down"), "ok"],
        settings=make_settings(llm_models=["only"], llm_max_retries=3),
    )
    assert asyncio.run(llm.generate_with_fallback("hello")) == "ok"
    assert llm.sleeps == [0.5, 1.0]


def test_client_errors_skip_to_next_model():
    llm = ScriptedLLM([http_error(400), "from model b"])
    assert asyncio.run(llm.generate_with_fallback("hello")) == "from model b"
    assert [c["model"] for c in llm.calls] == ["model-a", "model-b"]
    assert llm.sleeps == []


def test_rate_limit_is_retried():
    assert is_retriable(http_error(429))
    assert is_retriable(http_error(503))
    assert not is_retriable(http_error(404))


def test_exhausted_models_raise_ai_unavailable():
    llm = ScriptedLLM([http_error(500)] * 4)
    with pytest.raises(AIUnavailableError) as excinfo:
        asyncio.run(llm.generate_with_fallback("hello"))
    assert isinstance(excinfo.value.last_error, httpx.HTTPStatusError)
    assert len(llm.calls) == 4


def test_unconfigured_client_raises_immediately():
    llm = ScriptedLLM(["never used"], settings=make_settings(llm_base_url=None))
    with pytest.raises(AIUnavailableError):
        asyncio.run(llm.generate_with_fallback("hello"))
    assert llm.calls == []


def test_generate_payload_and_chat_prompt():
    llm = LLMClient(make_settings())
    sent = []

    async def fake_request(url, payload, log_prefix="AI Client"):
        sent.append((url, payload))
        return {"response": "hi there"}

    llm._make_request = fake_request

    reply = asyncio.run(llm.chat(
        messages=[{"role": "user", "content": "Hello"}],
        temperature=0.2,
        system="Be brief",
    ))

    assert reply == "hi there"
    url, payload = sent[0]
    assert url == "http://llm.test/api/generate"
    assert payload["model"] == "model-a"
    assert payload["system"] == "Be brief"
    assert payload["options"] == {"temperature": 0.2}
    assert payload["prompt"].startswith("User: Hello")
    assert payload["stream"] is False
