"""
Language-model client for any server that speaks the OpenAI
``/v1/chat/completions`` protocol: Groq, OpenAI, OpenRouter, Ollama,
llama.cpp server, LM Studio.

Retries
-------
Rate limits (HTTP 429), gateway hiccups (502/503/504) and connection
failures are retried up to ``max_attempts`` times with exponential
backoff plus jitter.  A numeric ``Retry-After`` header replaces the
computed delay.  Every other HTTP error is raised straight away.

Uses only ``urllib``, no ``requests`` / ``httpx`` dependency.
"""

from __future__ import annotations

import json
import logging
import random
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from ..errors import LanguageModelError, MalformedResponse, TransientUnavailable
from ..plugin_base import InferenceMetrics, LanguageModelClient

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = frozenset({429, 502, 503, 504})


@dataclass
class LLMConfig:
    """Connection and retry settings for one backend."""
    base_url: str = "https://api.groq.com/openai"
    api_key: str = ""
    model: str = "llama-3.1-8b-instant"
    timeout: float = 60.0
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    max_attempts: int = 3
    base_delay: float = 1.0      # seconds, doubled per attempt
    max_delay: float = 30.0      # cap for computed and server-suggested delays
    jitter: float = 0.5


def clean_json_response(response: str) -> str:
    """Strip a Markdown code fence some models wrap JSON in."""
    response = response.strip()
    if response.startswith("```json"):
        response = response[7:]
    elif response.startswith("```"):
        response = response[3:]
    if response.endswith("```"):
        response = response[:-3]
    return response.strip()


class OpenAICompatClient(LanguageModelClient):
    """
    Chat-completions client with bounded retry.

    Usage::

        client = OpenAICompatClient(LLMConfig(api_key="gsk-..."))
        data = client.complete_structured("Return JSON ...", {"input": "hi"})
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.cfg = config or LLMConfig()
        self._base_url = self._normalize_base_url(self.cfg.base_url)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._last_metrics = InferenceMetrics()

    @staticmethod
    def _normalize_base_url(raw: str) -> str:
        url = (raw or "").strip().rstrip("/")
        # The client appends /v1/... itself
        if url.endswith("/v1"):
            url = url[:-3]
        return url

    # ── LanguageModelClient ───────────────────────────────────

    def complete_structured(self, system_prompt: str, payload: Any) -> Dict[str, Any]:
        content = self._chat(system_prompt, payload)
        try:
            parsed = json.loads(clean_json_response(content))
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Model content is not JSON: {content[:200]!r}") from e
        if not isinstance(parsed, dict):
            raise MalformedResponse(
                f"Model content is JSON but not an object: {type(parsed).__name__}"
            )
        return parsed

    def complete_text(self, system_prompt: str, payload: Any) -> str:
        return self._chat(system_prompt, payload)

    def get_metrics(self) -> InferenceMetrics:
        return self._last_metrics

    # ── Request building ─────────────────────────────────────

    def _chat(self, system_prompt: str, payload: Any) -> str:
        user_content = payload if isinstance(payload, str) else json.dumps(
            payload, ensure_ascii=False, default=str,
        )
        body: Dict[str, Any] = {
            "model": self.cfg.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
        }
        if self.cfg.temperature is not None:
            body["temperature"] = self.cfg.temperature
        if self.cfg.max_tokens is not None:
            body["max_tokens"] = self.cfg.max_tokens

        t0 = time.perf_counter()
        data, attempts = self._post_with_retry(f"{self._base_url}/v1/chat/completions", body)
        elapsed = (time.perf_counter() - t0) * 1000

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedResponse(f"Unexpected completion shape: {str(data)[:200]}") from e
        if not isinstance(content, str):
            raise MalformedResponse(f"Completion content is not text: {content!r}")

        usage = data.get("usage") or {}
        self._last_metrics = InferenceMetrics(
            latency_ms=round(elapsed, 1),
            attempts=attempts,
            prompt_tokens=usage.get("prompt_tokens", 0),
            completion_tokens=usage.get("completion_tokens", 0),
        )
        return content

    def _make_request(self, url: str, body: dict) -> urllib.request.Request:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self.cfg.api_key:
            headers["Authorization"] = f"Bearer {self.cfg.api_key}"
        data = json.dumps(body).encode("utf-8")
        return urllib.request.Request(url, data=data, headers=headers, method="POST")

    # ── Retry loop ───────────────────────────────────────────

    def _post_with_retry(self, url: str, body: dict) -> tuple[dict, int]:
        attempts = max(1, self.cfg.max_attempts)
        for attempt in range(attempts):
            try:
                return self._post_json(url, body), attempt + 1
            except urllib.error.HTTPError as e:
                detail = e.read().decode("utf-8", errors="replace")
                if e.code not in RETRYABLE_STATUS:
                    raise LanguageModelError(f"HTTP {e.code} from {url}: {detail[:500]}") from e
                if attempt == attempts - 1:
                    raise TransientUnavailable(
                        f"HTTP {e.code} from {url} after {attempts} attempts: {detail[:200]}",
                        status=e.code,
                        attempts=attempts,
                    ) from e
                delay = self._retry_delay(attempt, e.headers.get("Retry-After") if e.headers else None)
                logger.warning(
                    "LLM request got HTTP %d (attempt %d/%d), retrying in %.2fs",
                    e.code, attempt + 1, attempts, delay,
                )
            except (urllib.error.URLError, OSError) as e:
                if attempt == attempts - 1:
                    raise TransientUnavailable(
                        f"Cannot reach {url} after {attempts} attempts: {e}",
                        attempts=attempts,
                    ) from e
                delay = self._retry_delay(attempt, None)
                logger.warning(
                    "LLM request failed (attempt %d/%d): %s; retrying in %.2fs",
                    attempt + 1, attempts, e, delay,
                )
            self._sleep(delay)
        raise TransientUnavailable(f"{url} failed after {attempts} attempts", attempts=attempts)

    def _retry_delay(self, attempt: int, retry_after: Optional[str]) -> float:
        if retry_after:
            try:
                suggested = float(retry_after)
            except ValueError:
                suggested = None
            if suggested is not None and suggested >= 0:
                return min(suggested, self.cfg.max_delay)
        delay = self.cfg.base_delay * (2 ** attempt) + self._rng.uniform(0, self.cfg.jitter)
        return min(delay, self.cfg.max_delay)

    def _post_json(self, url: str, body: dict) -> dict:
        req = self._make_request(url, body)
        with urllib.request.urlopen(req, timeout=self.cfg.timeout) as resp:
            raw = resp.read().decode("utf-8")
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Response body is not JSON: {raw[:200]!r}") from e
        if not isinstance(data, dict):
            raise MalformedResponse(f"Response body is not an object: {raw[:200]!r}")
        return data
