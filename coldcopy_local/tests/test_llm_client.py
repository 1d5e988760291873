from pathlib import Path
from types import SimpleNamespace
import sys

import httpx
import openai
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2]))

from coldcopy_local.utils import llm_client as llm_module
from coldcopy_local.utils.llm_client import (
    CompletionClient,
    CompletionError,
    backoff_seconds,
    normalize_llm_base_url,
)


REQUEST = httpx.Request("POST", "https://api.example.com/chat/completions")


def status_error(cls, status):
    response = httpx.Response(status, request=REQUEST)
    return cls(f"status {status}", response=response, body=None)


def completion(content):
    usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=usage,
    )


class ScriptedCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, **params):
        self.calls.append(params)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(llm_module.time, "sleep", recorded.append)
    return recorded


def make_client(outcomes, max_attempts=4):
    client = CompletionClient(api_key="sk-test", base_url="https://api.example.com/chat/completions",
                              max_attempts=max_attempts)
    completions = ScriptedCompletions(outcomes)
    client.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return client, completions


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("https://api.deepseek.com/chat/completions", "https://api.deepseek.com"),
        ("https://proxy.local/v1/completions/", "https://proxy.local/v1"),
        ("https://proxy.local/v1", "https://proxy.local/v1"),
        ("", None),
        (None, None),
    ],
)
def test_normalize_llm_base_url(raw, expected):
    assert normalize_llm_base_url(raw) == expected


def test_backoff_schedule_is_capped():
    assert [backoff_seconds(n) for n in range(1, 7)] == [0.5, 1.0, 2.0, 4.0, 8.0, 8.0]


def test_missing_key_raises():
    with pytest.raises(CompletionError, match="API key"):
        CompletionClient(api_key=None).complete("prompt")


def test_complete_sends_prompt_and_request_id(sleeps):
    client, completions = make_client([completion("Subject: Hi\n\nBody")])

    assert client.complete("Write it", request_id="job_1_row_0") == "Subject: Hi\n\nBody"

    params = completions.calls[0]
    assert params["messages"][-1] == {"role": "user", "content": "Write it"}
    assert params["extra_headers"] == {"X-Request-Id": "job_1_row_0"}
    assert sleeps == []


def test_transient_errors_are_retried_with_backoff(sleeps):
    client, completions = make_client([
        status_error(openai.RateLimitError, 429),
        status_error(openai.InternalServerError, 503),
        completion("ok"),
    ])

    assert client.complete("p") == "ok"
    assert len(completions.calls) == 3
    assert sleeps == [0.5, 1.0]


def test_timeouts_exhaust_attempts(sleeps):
    client, completions = make_client([openai.APITimeoutError(request=REQUEST)] * 3, max_attempts=3)

    with pytest.raises(CompletionError, match="after 3 attempts"):
        client.complete("p")
    assert sleeps == [0.5, 1.0]


def test_client_errors_are_not_retried(sleeps):
    client, completions = make_client([status_error(openai.AuthenticationError, 401)])

    with pytest.raises(CompletionError, match="401"):
        client.complete("p")
    assert len(completions.calls) == 1
    assert sleeps == []


def test_html_response_is_rejected(sleeps):
    client, _ = make_client([completion("<!DOCTYPE html><html>gateway</html>")])

    with pytest.raises(CompletionError, match="HTML"):
        client.complete("p")


def test_empty_content_returns_empty_string(sleeps):
    client, _ = make_client([completion(None)])
    assert client.complete("p") == ""
