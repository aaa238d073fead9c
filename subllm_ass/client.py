"""Remote LLM backends.

Both clients expose ``generate(prompt, generation) -> str`` and raise the
classified errors from :mod:`subllm_ass.errors`, so the retry policy does not
need to know which backend it is talking to.
"""
from __future__ import annotations

from dataclasses import dataclass
import json
import socket
import time
from urllib import error, parse, request

from .console import RUNTIME_METRICS, bench
from .errors import (
    ConfigurationError,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
    ServerError,
    TranslationError,
)

GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models"
GEMINI_DEFAULT_MODEL = "gemini-2.0-flash"
OLLAMA_DEFAULT_HOST = "http://localhost:11434"
OLLAMA_DEFAULT_MODEL = "gemma3:4b"
DEFAULT_TIMEOUT = 30
QUOTA_MARKERS = ("quota", "rate limit", "rate-limit", "resource_exhausted", "too many requests")


@dataclass(frozen=True)
class GenerationConfig:
    temperature: float = 0.7
    top_p: float = 0.95
    top_k: int = 40
    max_output_tokens: int = 2048

    def clamped(self) -> "GenerationConfig":
        return GenerationConfig(
            temperature=max(0.1, min(float(self.temperature), 1.0)),
            top_p=max(0.1, min(float(self.top_p), 1.0)),
            top_k=max(1, min(int(self.top_k), 40)),
            max_output_tokens=max(1, int(self.max_output_tokens)),
        )


def parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def classify_http_error(code: int, body: str, retry_after: str | None = None, service: str = "API") -> TranslationError:
    lowered = (body or "").lower()
    if code == 429 or any(marker in lowered for marker in QUOTA_MARKERS):
        return RateLimitError(f"{service} rate limit (HTTP {code})", retry_after=parse_retry_after(retry_after))
    if code >= 500:
        return ServerError(f"{service} server error (HTTP {code}): {body[:200]}", status=code)
    if code in (401, 403):
        return ConfigurationError(f"{service} rejected the credentials (HTTP {code}); check the API key")
    return TranslationError(f"{service} HTTP {code}: {body[:200]}")


def post_json(url: str, payload: dict, timeout: float, service: str) -> dict:
    """POST ``payload`` and decode the JSON answer, classifying every failure."""
    data = json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    req = request.Request(url, data=data, headers={"Content-Type": "application/json"})
    try:
        with request.urlopen(req, timeout=timeout) as resp:
            body = resp.read().decode("utf-8", errors="replace")
    except error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="replace")
        retry_after = exc.headers.get("Retry-After") if exc.headers is not None else None
        raise classify_http_error(exc.code, body, retry_after, service) from exc
    except (socket.timeout, TimeoutError) as exc:
        raise NetworkError(f"{service} request timed out after {timeout}s") from exc
    except error.URLError as exc:
        if isinstance(exc.reason, (TimeoutError, socket.timeout)):
            raise NetworkError(f"{service} request timed out after {timeout}s") from exc
        raise NetworkError(f"Cannot reach {service}: {exc.reason}") from exc
    except (ConnectionError, OSError) as exc:
        raise NetworkError(f"Cannot reach {service}: {exc}") from exc
    RUNTIME_METRICS.bump("remote.request_bytes", len(data))
    try:
        decoded = json.loads(body)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"Unexpected {service} response: {body[:200]}") from exc
    if not isinstance(decoded, dict):
        raise MalformedResponseError(f"Unexpected {service} response: {body[:200]}")
    return decoded


class GeminiClient:
    service = "Gemini"

    def __init__(
        self,
        api_key: str | None,
        model: str = GEMINI_DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT,
        endpoint: str = GEMINI_ENDPOINT,
    ) -> None:
        if not api_key or not api_key.strip():
            raise ConfigurationError("No Gemini API key configured (use --api-key or GEMINI_API_KEY)")
        self.api_key = api_key.strip()
        self.model = model
        self.timeout = timeout
        self.endpoint = endpoint.rstrip("/")

    def build_url(self) -> str:
        return f"{self.endpoint}/{parse.quote(self.model)}:generateContent?key={parse.quote(self.api_key)}"

    def build_body(self, prompt: str, generation: GenerationConfig) -> dict:
        gen = generation.clamped()
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": gen.temperature,
                "topP": gen.top_p,
                "topK": gen.top_k,
                "maxOutputTokens": gen.max_output_tokens,
            },
        }

    def generate(self, prompt: str, generation: GenerationConfig | None = None) -> str:
        generation = generation or GenerationConfig()
        started = time.perf_counter()
        with RUNTIME_METRICS.timed("remote.generate"):
            payload = post_json(self.build_url(), self.build_body(prompt, generation), self.timeout, self.service)
        RUNTIME_METRICS.bump("remote.calls")
        RUNTIME_METRICS.bump("remote.prompt_chars", len(prompt))
        try:
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            feedback = payload.get("promptFeedback") if isinstance(payload, dict) else None
            raise MalformedResponseError(f"Gemini response has no text (feedback={feedback})") from exc
        if not isinstance(text, str):
            raise MalformedResponseError("Gemini response text is not a string")
        bench(f"gemini generate {time.perf_counter() - started:.2f}s prompt_chars={len(prompt)} out_chars={len(text)}")
        return text


class OllamaClient:
    service = "Ollama"

    def __init__(
        self,
        host: str = OLLAMA_DEFAULT_HOST,
        model: str = OLLAMA_DEFAULT_MODEL,
        timeout: float = DEFAULT_TIMEOUT,
        keep_alive: str | None = "10m",
    ) -> None:
        if not host:
            raise ConfigurationError("No Ollama host configured")
        self.host = host.rstrip("/")
        self.model = model
        self.timeout = timeout
        self.keep_alive = keep_alive

    def build_body(self, prompt: str, generation: GenerationConfig) -> dict:
        gen = generation.clamped()
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": "You are a professional subtitle translator."},
                {"role": "user", "content": prompt},
            ],
            "stream": False,
            "options": {
                "temperature": gen.temperature,
                "top_p": gen.top_p,
                "top_k": gen.top_k,
                "num_predict": gen.max_output_tokens,
            },
        }
        if self.keep_alive:
            payload["keep_alive"] = self.keep_alive
        return payload

    def generate(self, prompt: str, generation: GenerationConfig | None = None) -> str:
        generation = generation or GenerationConfig()
        started = time.perf_counter()
        with RUNTIME_METRICS.timed("remote.generate"):
            payload = post_json(f"{self.host}/api/chat", self.build_body(prompt, generation), self.timeout, self.service)
        RUNTIME_METRICS.bump("remote.calls")
        RUNTIME_METRICS.bump("remote.prompt_chars", len(prompt))
        try:
            content = payload["message"]["content"]
        except (KeyError, TypeError) as exc:
            raise MalformedResponseError(f"Unexpected Ollama response: {str(payload)[:200]}") from exc
        if not isinstance(content, str):
            raise MalformedResponseError("Ollama response content is not a string")
        bench(f"ollama chat {time.perf_counter() - started:.2f}s prompt_chars={len(prompt)} out_chars={len(content)}")
        return content
