"""Context block of earlier translations, sent along with each batch."""
from __future__ import annotations

from dataclasses import dataclass
import math
from typing import Dict, List, Mapping, Sequence, TypeVar, Union

from .memory import MemoryEntry, TranslationMemory, now_ms, similarity
from .models import Chunk

MODE_LIMITED = "limited"
MODE_FULL = "full"
AVERAGE_TOKENS_PER_CHAR = 0.25
HISTORY_LIMIT = 500
HISTORY_KEEP = 300
LAST_CHUNK_EXAMPLES = 5
MEMORY_SCAN_ENTRIES = 20
MEMORY_FALLBACK_EXAMPLES = 3
PROMPT_TOKEN_LIMIT = 30000


@dataclass(frozen=True)
class ContextEntry:
    source: str
    target: str
    chunk_index: int
    confidence: float = 1.0
    timestamp: int = 0


E = TypeVar("E", bound=Union[ContextEntry, MemoryEntry])


@dataclass(frozen=True)
class ContextOptions:
    mode: str = MODE_LIMITED
    max_tokens: int = 1000
    max_examples: int = 10
    similarity_threshold: float = 0.3


@dataclass(frozen=True)
class TokenEstimate:
    context: int
    prompt: int
    total: int
    is_within_limit: bool


def estimate_tokens(text: str) -> int:
    return int(math.ceil(len(text or "") * AVERAGE_TOKENS_PER_CHAR))


def token_estimate(context: str, prompt: str) -> TokenEstimate:
    context_tokens = estimate_tokens(context)
    prompt_tokens = estimate_tokens(prompt)
    total = context_tokens + prompt_tokens
    return TokenEstimate(context_tokens, prompt_tokens, total, total < PROMPT_TOKEN_LIMIT)


def format_pair(source: str, target: str) -> str:
    return f'- "{source}" -> "{target}"'


def best_similarity(texts: Sequence[str], source: str) -> float:
    lowered = source.lower()
    return max((similarity(text.lower(), lowered) for text in texts), default=0.0)


class TranslationContext:
    def __init__(
        self,
        memory: TranslationMemory | None = None,
        history_limit: int = HISTORY_LIMIT,
        history_keep: int = HISTORY_KEEP,
    ) -> None:
        self.memory = memory
        self.history_limit = history_limit
        self.history_keep = min(history_keep, history_limit)
        self.history: List[ContextEntry] = []

    def add_chunk_translations(self, chunk: Chunk, translations: Mapping[str, str]) -> int:
        added = 0
        for source, original in zip(chunk.texts, chunk.original_texts):
            target = translations.get(original)
            if not target:
                continue
            self.history.append(
                ContextEntry(source=source, target=target, chunk_index=chunk.chunk_index, timestamp=now_ms())
            )
            added += 1
        if len(self.history) > self.history_limit:
            self.history = self.history[-self.history_keep :]
        return added

    def build(self, texts: Sequence[str], options: ContextOptions) -> str:
        if options.mode == MODE_FULL:
            context = self._build_full(texts, options.max_examples, options.similarity_threshold)
        else:
            context = self._build_limited(texts, options.max_examples, options.similarity_threshold)
        if estimate_tokens(context) > options.max_tokens:
            target_chars = int(math.floor(options.max_tokens / AVERAGE_TOKENS_PER_CHAR))
            context = context[:target_chars] + "..."
        return context

    def _build_full(self, texts: Sequence[str], max_examples: int, threshold: float) -> str:
        parts: List[str] = []
        relevant = self._relevant_history(texts, threshold)
        history_examples = int(math.floor(max_examples * 0.6))
        if relevant and history_examples > 0:
            parts.append("Previous translations in this session:")
            parts.extend(format_pair(entry.source, entry.target) for entry in relevant[:history_examples])
        memory_block = self._memory_block(texts, int(math.floor(max_examples * 0.4)), threshold)
        if memory_block:
            if parts:
                parts.append("")
            parts.append(memory_block)
        return "\n".join(parts)

    def _build_limited(self, texts: Sequence[str], max_examples: int, threshold: float) -> str:
        parts: List[str] = []
        last_entries = self.last_chunk_entries(LAST_CHUNK_EXAMPLES)
        if last_entries:
            parts.append("Recent translations:")
            parts.extend(format_pair(entry.source, entry.target) for entry in last_entries)
        memory_block = self._memory_block(texts, max(3, max_examples - len(last_entries)), threshold)
        if memory_block:
            if parts:
                parts.append("")
            parts.append(memory_block)
        return "\n".join(parts)

    def _memory_block(self, texts: Sequence[str], max_examples: int, threshold: float) -> str:
        if self.memory is None or max_examples <= 0:
            return ""
        recent = self.memory.entries()[:MEMORY_SCAN_ENTRIES]
        if not recent:
            return ""
        relevant = self._rank(texts, recent, threshold)
        if not relevant:
            fallback = recent[: min(max_examples, MEMORY_FALLBACK_EXAMPLES)]
            return "Recent translation patterns:\n" + "\n".join(
                format_pair(entry.source, entry.target) for entry in fallback
            )
        return "Similar translation patterns:\n" + "\n".join(
            format_pair(entry.source, entry.target) for entry in relevant[:max_examples]
        )

    def _relevant_history(self, texts: Sequence[str], threshold: float) -> List[ContextEntry]:
        return self._rank(texts, self.history, threshold)

    @staticmethod
    def _rank(texts: Sequence[str], entries: Sequence[E], threshold: float) -> List[E]:
        if not texts:
            return []
        scored = []
        for entry in entries:
            score = best_similarity(texts, entry.source)
            if score >= threshold:
                scored.append((score, entry))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [entry for _, entry in scored]

    def last_chunk_entries(self, count: int) -> List[ContextEntry]:
        if not self.history:
            return []
        last_index = self.history[-1].chunk_index
        entries = [entry for entry in self.history if entry.chunk_index == last_index]
        return entries[-count:]

    def clear(self) -> None:
        self.history = []

    def stats(self) -> Dict[str, int]:
        total = len(self.history)
        chunks = len({entry.chunk_index for entry in self.history})
        return {
            "total_entries": total,
            "chunks": chunks,
            "avg_entries_per_chunk": int(round(total / float(chunks))) if chunks else 0,
            "memory_entries": len(self.memory) if self.memory is not None else 0,
        }
