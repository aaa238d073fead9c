"""Plain value types passed between the orchestrator and its observers."""
from __future__ import annotations

from dataclasses import dataclass, field
import time
from typing import List, Tuple


@dataclass(frozen=True)
class Chunk:
    texts: Tuple[str, ...]
    original_texts: Tuple[str, ...]
    chunk_index: int
    total_chunks: int


@dataclass
class ProcessingMetrics:
    start_time: float = field(default_factory=time.monotonic)
    processed_texts: int = 0
    failed_texts: int = 0
    retry_count: int = 0
    memory_hits: int = 0


@dataclass(frozen=True)
class ProgressUpdate:
    progress: int
    current_chunk: int
    total_chunks: int
    translated_count: int
    total_texts: int
    estimated_time_remaining: float


@dataclass(frozen=True)
class QualityScore:
    overall: int
    fluency: int
    accuracy: int
    consistency: int
    suggestions: List[str] = field(default_factory=list)
