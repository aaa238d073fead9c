"""Translate .ASS subtitle dialogue with an LLM while keeping the file intact."""
from __future__ import annotations

from .ass_parser import DialogueLine, MarkupSpan, parse_document, reconstruct_document
from .errors import (
    CancelledError,
    ConfigurationError,
    MalformedResponseError,
    NetworkError,
    RateLimitError,
    ServerError,
    TranslationError,
)
from .memory import MemoryEntry, TranslationMemory
from .orchestrator import ChunkOrchestrator, RunContext, RunState, create_chunks, translate_document
from .retry import CancelToken, RetryPolicy

__version__ = "0.3.0"
