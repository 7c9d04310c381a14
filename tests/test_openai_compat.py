"""
Tests for oddyseus/plugins/openai_compat.py — chat-completions client.

All network calls are replaced with unittest.mock patches so no real
server is needed.

Covers:
* _normalize_base_url()
* complete_text() — content extraction, request body, metrics
* complete_structured() — fenced JSON, non-object and unparsable replies
* retry — 429 with Retry-After, backoff, exhaustion, URLError,
  non-retryable HTTP errors
"""

from __future__ import annotations

import io
import json
import random
from unittest.mock import MagicMock, patch

import pytest
import urllib.error

from oddyseus.errors import LanguageModelError, MalformedResponse, TransientUnavailable
from oddyseus.plugins.openai_compat import (
    LLMConfig,
    OpenAICompatClient,
    clean_json_response,
)


# ── Test helpers ──────────────────────────────────────────────────────

class Sleeps(list):
    def __call__(self, seconds: float) -> None:
        self.append(seconds)


def make_client(**overrides) -> tuple[OpenAICompatClient, Sleeps]:
    cfg = LLMConfig(base_url="http://localhost:8080", api_key="sk-test", model="m")
    for key, value in overrides.items():
        setattr(cfg, key, value)
    sleeps = Sleeps()
    return OpenAICompatClient(cfg, sleep=sleeps, rng=random.Random(7)), sleeps


def chat_json(content, prompt_tokens: int = 5, completion_tokens: int = 3) -> bytes:
    return json.dumps({
        "choices": [{"message": {"content": content}}],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
        },
    }).encode()


def make_ctx_response(body: bytes) -> MagicMock:
    """Context-manager-compatible mock response."""
    resp = MagicMock()
    resp.read.return_value = body
    resp.__enter__ = lambda s: s
    resp.__exit__ = MagicMock(return_value=False)
    return resp


def http_error(code: int, headers: dict | None = None) -> urllib.error.HTTPError:
    return urllib.error.HTTPError(
        "http://localhost:8080/v1/chat/completions",
        code,
        "error",
        headers or {},
        io.BytesIO(b'{"error": "nope"}'),
    )


# ── _normalize_base_url ───────────────────────────────────────────────

class TestNormalizeBaseUrl:
    def test_strips_v1_suffix(self):
        assert OpenAICompatClient._normalize_base_url(
            "https://api.groq.com/openai/v1"
        ) == "https://api.groq.com/openai"

    def test_strips_trailing_slash(self):
        assert OpenAICompatClient._normalize_base_url(
            "http://localhost:8080/"
        ) == "http://localhost:8080"

    def test_empty_string_returns_empty(self):
        assert OpenAICompatClient._normalize_base_url("") == ""


# ── complete_text() ──────────────────────────────────────────────────

class TestCompleteText:
    def test_returns_content(self):
        client, _ = make_client()
        with patch("urllib.request.urlopen",
                   return_value=make_ctx_response(chat_json("Hello there!"))):
            assert client.complete_text("sys", "hi") == "Hello there!"

    def test_request_body_and_headers(self):
        client, _ = make_client(temperature=0.2)
        captured = []

        def fake_urlopen(req, timeout=None):
            captured.append(req)
            return make_ctx_response(chat_json("ok"))

        with patch("urllib.request.urlopen", side_effect=fake_urlopen):
            client.complete_text("be nice", {"input": "hi"})

        req = captured[0]
        body = json.loads(req.data.decode())
        assert req.full_url == "http://localhost:8080/v1/chat/completions"
        assert req.get_header("Authorization") == "Bearer sk-test"
        assert body["model"] == "m"
        assert body["temperature"] == 0.2
        assert body["messages"][0] == {"role": "system", "content": "be nice"}
        assert json.loads(body["messages"][1]["content"]) == {"input": "hi"}

    def test_no_key_no_auth_header(self):
        client, _ = make_client(api_key="")
        captured = []

        def fake_urlopen(req, timeout=None):
            captured.append(req)
            return make_ctx_response(chat_json("ok"))

        with patch("urllib.request.urlopen", side_effect=fake_urlopen):
            client.complete_text("sys", "hi")
        assert captured[0].get_header("Authorization") is None

    def test_metrics(self):
        client, _ = make_client()
        with patch("urllib.request.urlopen",
                   return_value=make_ctx_response(chat_json("Hi", 11, 2))):
            client.complete_text("sys", "hi")
        m = client.get_metrics()
        assert m.latency_ms >= 0.0
        assert m.attempts == 1
        assert (m.prompt_tokens, m.completion_tokens) == (11, 2)

    def test_missing_choices_is_malformed(self):
        client, _ = make_client()
        body = json.dumps({"choices": []}).encode()
        with patch("urllib.request.urlopen", return_value=make_ctx_response(body)):
            with pytest.raises(MalformedResponse):
                client.complete_text("sys", "hi")

    def test_non_json_body_is_malformed(self):
        client, sleeps = make_client()
        with patch("urllib.request.urlopen",
                   return_value=make_ctx_response(b"<html>bad gateway</html>")):
            with pytest.raises(MalformedResponse):
                client.complete_text("sys", "hi")
        assert sleeps == []


# ── complete_structured() ────────────────────────────────────────────

class TestCompleteStructured:
    def test_parses_object(self):
        client, _ = make_client()
        with patch("urllib.request.urlopen",
                   return_value=make_ctx_response(chat_json('{"valence": 0.5}'))):
            assert client.complete_structured("sys", {}) == {"valence": 0.5}

    def test_strips_code_fence(self):
        client, _ = make_client()
        fenced = '```json\n{"arousal": 0.1}\n```'
        with patch("urllib.request.urlopen",
                   return_value=make_ctx_response(chat_json(fenced))):
            assert client.complete_structured("sys", {}) == {"arousal": 0.1}

    def test_unparsable_content(self):
        client, _ = make_client()
        with patch("urllib.request.urlopen",
                   return_value=make_ctx_response(chat_json("I feel great!"))):
            with pytest.raises(MalformedResponse):
                client.complete_structured("sys", {})

    def test_non_object_content(self):
        client, _ = make_client()
        with patch("urllib.request.urlopen",
                   return_value=make_ctx_response(chat_json("[1, 2]"))):
            with pytest.raises(MalformedResponse):
                client.complete_structured("sys", {})


class TestCleanJsonResponse:
    def test_plain_fence(self):
        assert clean_json_response("```\n{}\n```") == "{}"

    def test_untouched(self):
        assert clean_json_response('  {"a": 1} ') == '{"a": 1}'


# ── Retry ────────────────────────────────────────────────────────────

class TestRetry:
    def test_429_then_success_honours_retry_after(self):
        client, sleeps = make_client()
        responses = [http_error(429, {"Retry-After": "2"}),
                     make_ctx_response(chat_json("ok"))]
        with patch("urllib.request.urlopen", side_effect=responses):
            assert client.complete_text("sys", "hi") == "ok"
        assert sleeps == [2.0]
        assert client.get_metrics().attempts == 2

    def test_retry_after_capped(self):
        client, sleeps = make_client(max_delay=5.0)
        responses = [http_error(429, {"Retry-After": "120"}),
                     make_ctx_response(chat_json("ok"))]
        with patch("urllib.request.urlopen", side_effect=responses):
            client.complete_text("sys", "hi")
        assert sleeps == [5.0]

    def test_exponential_backoff_with_jitter(self):
        client, sleeps = make_client(base_delay=1.0, jitter=0.5, max_attempts=3)
        responses = [http_error(503), http_error(502),
                     make_ctx_response(chat_json("ok"))]
        with patch("urllib.request.urlopen", side_effect=responses):
            client.complete_text("sys", "hi")
        assert len(sleeps) == 2
        assert 1.0 <= sleeps[0] <= 1.5
        assert 2.0 <= sleeps[1] <= 2.5

    def test_exhausted_raises_transient(self):
        client, sleeps = make_client(max_attempts=3)
        with patch("urllib.request.urlopen",
                   side_effect=[http_error(429) for _ in range(3)]) as mock:
            with pytest.raises(TransientUnavailable) as exc:
                client.complete_text("sys", "hi")
        assert mock.call_count == 3
        assert len(sleeps) == 2
        assert exc.value.status == 429
        assert exc.value.attempts == 3

    def test_connection_error_retried(self):
        client, sleeps = make_client(max_attempts=2)
        responses = [urllib.error.URLError("refused"),
                     make_ctx_response(chat_json("ok"))]
        with patch("urllib.request.urlopen", side_effect=responses):
            assert client.complete_text("sys", "hi") == "ok"
        assert len(sleeps) == 1

    def test_connection_error_exhausted(self):
        client, _ = make_client(max_attempts=2)
        with patch("urllib.request.urlopen",
                   side_effect=urllib.error.URLError("refused")):
            with pytest.raises(TransientUnavailable):
                client.complete_text("sys", "hi")

    def test_400_not_retried(self):
        client, sleeps = make_client()
        with patch("urllib.request.urlopen", side_effect=http_error(400)) as mock:
            with pytest.raises(LanguageModelError) as exc:
                client.complete_text("sys", "hi")
        assert not isinstance(exc.value, TransientUnavailable)
        assert mock.call_count == 1
        assert sleeps == []

    def test_401_not_retried(self):
        client, sleeps = make_client()
        with patch("urllib.request.urlopen", side_effect=http_error(401)):
            with pytest.raises(LanguageModelError):
                client.complete_text("sys", "hi")
        assert sleeps == []
