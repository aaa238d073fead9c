"""Run settings and backend construction from CLI arguments."""
from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path

from .client import (
    DEFAULT_TIMEOUT,
    GEMINI_DEFAULT_MODEL,
    OLLAMA_DEFAULT_HOST,
    OLLAMA_DEFAULT_MODEL,
    GeminiClient,
    GenerationConfig,
    OllamaClient,
)
from .errors import ConfigurationError
from .memory import DEFAULT_STORE_PATH
from .prompts import DEFAULT_SEPARATOR, FORMALITY_LEVELS, GENRES, QualitySettings
from .retry import MAX_RETRIES, RATE_LIMIT_DELAY

API_KEY_ENV = "GEMINI_API_KEY"
BACKENDS = ("gemini", "ollama")
CONTEXT_MODES = ("none", "limited", "full")
DEFAULT_TARGET = "Persian"
DEFAULT_CHUNKS = 5
MAX_CHUNKS = 5
DEFAULT_BASE_DELAY = 1.0
MEMORY_HIT_SIMILARITY = 0.95
MEMORY_HIT_CONFIDENCE = 0.98
CONTEXT_SIMILARITY = 0.3


@dataclass(frozen=True)
class TranslationSettings:
    target_lang: str = DEFAULT_TARGET
    number_of_chunks: int = DEFAULT_CHUNKS
    max_chunks: int = MAX_CHUNKS
    base_delay: float = DEFAULT_BASE_DELAY
    quota_delay: float = RATE_LIMIT_DELAY
    max_retries: int = MAX_RETRIES
    call_deadline: float | None = None
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    quality: QualitySettings = field(default_factory=QualitySettings)
    context_mode: str = "limited"
    context_max_tokens: int = 1000
    context_max_examples: int = 10
    context_similarity: float = CONTEXT_SIMILARITY
    separator: str | None = None
    memory_similarity: float = MEMORY_HIT_SIMILARITY
    memory_confidence: float = MEMORY_HIT_CONFIDENCE

    def validate(self) -> None:
        if not (self.target_lang or "").strip():
            raise ConfigurationError("Target language is empty")
        if self.number_of_chunks < 1:
            raise ConfigurationError(f"number_of_chunks must be >= 1 (got {self.number_of_chunks})")
        if self.max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0 (got {self.max_retries})")
        if self.context_mode not in CONTEXT_MODES:
            raise ConfigurationError(f"Unknown context mode: {self.context_mode}")
        if self.call_deadline is not None and self.call_deadline <= 0:
            raise ConfigurationError("call_deadline must be positive")


def settings_from_args(args) -> TranslationSettings:
    quality = QualitySettings(
        genre=args.genre if args.genre in GENRES else "movie",
        formality=args.formality if args.formality in FORMALITY_LEVELS else "neutral",
        preserve_names=bool(args.preserve_names),
        contextual_translation=args.context_mode != "none",
        quality_check=bool(args.quality_check),
    )
    generation = GenerationConfig(
        temperature=args.temperature,
        top_p=args.top_p,
        top_k=args.top_k,
        max_output_tokens=args.max_output_tokens,
    )
    return TranslationSettings(
        target_lang=args.target,
        number_of_chunks=args.chunks,
        base_delay=args.base_delay,
        quota_delay=args.quota_delay,
        max_retries=args.max_retries,
        call_deadline=args.call_deadline,
        generation=generation,
        quality=quality,
        context_mode=args.context_mode,
        context_max_tokens=args.context_tokens,
        separator=DEFAULT_SEPARATOR if args.separator else None,
    )


def resolve_api_key(args) -> str | None:
    return args.api_key or os.environ.get(API_KEY_ENV)


def build_client(args):
    if args.backend == "ollama":
        return OllamaClient(
            host=args.host or OLLAMA_DEFAULT_HOST,
            model=args.model or OLLAMA_DEFAULT_MODEL,
            timeout=args.timeout or DEFAULT_TIMEOUT,
            keep_alive=args.keep_alive,
        )
    if args.backend == "gemini":
        return GeminiClient(
            api_key=resolve_api_key(args),
            model=args.model or GEMINI_DEFAULT_MODEL,
            timeout=args.timeout or DEFAULT_TIMEOUT,
        )
    raise ConfigurationError(f"Unknown backend: {args.backend}")


def memory_path(args) -> Path:
    return Path(args.memory_file).expanduser() if args.memory_file else DEFAULT_STORE_PATH
