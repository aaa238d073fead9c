"""Split the unique texts into chunks and translate them one chunk at a time.

A run owns a :class:`~subllm_ass.retry.CancelToken`. Memory hits are served
locally; misses go to the remote model through the retry policy. A chunk that
still fails after retries leaves its texts untranslated and the run moves on.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
import enum
import math
import threading
import time
from typing import Callable, Dict, List, Sequence, Tuple

from .ass_parser import parse_document, reconstruct_document, unique_texts
from .config import TranslationSettings
from .console import RUNTIME_METRICS, bench
from .context import ContextOptions, TranslationContext
from .errors import CancelledError, ConfigurationError, NetworkError, TranslationError
from .memory import MemoryEntry, TranslationMemory, now_ms
from .models import Chunk, ProcessingMetrics, ProgressUpdate, QualityScore
from .prompts import build_prompt, clean_persian_translation, clean_text, is_persian
from .quality import generate_quality_score
from .response_parser import ResponseParser
from .retry import CancelToken, RetryPolicy, pause

DEADLINE_POLL_SECONDS = 0.1


class RunState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


def create_chunks(texts: Sequence[str], number_of_chunks: int, max_chunks: int = 5) -> List[Chunk]:
    total = len(texts)
    if total == 0:
        return []
    wanted = max(1, min(int(number_of_chunks), int(max_chunks)))
    size = max(1, int(math.ceil(total / float(wanted))))
    count = int(math.ceil(total / float(size)))
    chunks: List[Chunk] = []
    for idx, start in enumerate(range(0, total, size)):
        originals = tuple(texts[start : start + size])
        chunks.append(
            Chunk(
                texts=tuple(clean_text(text) for text in originals),
                original_texts=originals,
                chunk_index=idx,
                total_chunks=count,
            )
        )
    return chunks


def estimate_remaining(elapsed: float, fraction_done: float) -> float:
    if fraction_done <= 0:
        return 0.0
    return max(0.0, elapsed / fraction_done - elapsed)


def call_with_deadline(operation: Callable[[], str], token: CancelToken, deadline: float) -> str:
    """Race ``operation`` against ``deadline`` seconds and the cancel token.

    The worker thread is abandoned, not killed, when the race is lost.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(operation)
    started = time.monotonic()
    try:
        while True:
            try:
                return future.result(timeout=DEADLINE_POLL_SECONDS)
            except FutureTimeout:
                pass
            token.raise_if_cancelled()
            if time.monotonic() - started >= deadline:
                raise NetworkError(f"Remote call exceeded {deadline:.0f}s")
    finally:
        executor.shutdown(wait=False)


@dataclass
class RunContext:
    client: object
    settings: TranslationSettings
    memory: TranslationMemory | None = None
    context: TranslationContext | None = None
    on_progress: Callable[[ProgressUpdate], None] | None = None
    on_status: Callable[[str], None] | None = None
    on_quality_scores: Callable[[List[QualityScore]], None] | None = None
    sleep: Callable[[float], None] | None = None


class ChunkOrchestrator:
    def __init__(self, run: RunContext) -> None:
        self.run = run
        self.state = RunState.IDLE
        self.metrics: ProcessingMetrics | None = None
        self.parser = ResponseParser(run.settings.target_lang)
        self.retry = RetryPolicy(
            max_retries=run.settings.max_retries,
            rate_limit_delay=run.settings.quota_delay,
            sleep=run.sleep,
        )
        self._run_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._active_token: CancelToken | None = None

    def _status(self, message: str) -> None:
        bench(message)
        if self.run.on_status is not None:
            self.run.on_status(message)

    def cancel(self) -> None:
        with self._state_lock:
            token = self._active_token
        if token is not None:
            token.cancel()

    def translate(self, texts: Sequence[str], cancel_token: CancelToken | None = None) -> Dict[str, str]:
        """Translate ``texts``; returns original text -> translation for the successes."""
        token = cancel_token or CancelToken()
        # At most one run at a time: a new run stops the one in flight.
        self.cancel()
        with self._run_lock:
            with self._state_lock:
                self._active_token = token
                self.state = RunState.RUNNING
            try:
                result = self._translate(texts, token)
            except CancelledError:
                self._finish(RunState.CANCELLED)
                self._status("Translation cancelled")
                raise
            except BaseException:
                self._finish(RunState.FAILED)
                raise
            self._finish(RunState.COMPLETED)
            return result

    def _finish(self, state: RunState) -> None:
        with self._state_lock:
            self._active_token = None
            self.state = state

    def _translate(self, texts: Sequence[str], token: CancelToken) -> Dict[str, str]:
        settings = self.run.settings
        settings.validate()
        token.raise_if_cancelled()

        unique = list(dict.fromkeys(text for text in texts if text and text.strip()))
        chunks = create_chunks(unique, settings.number_of_chunks, settings.max_chunks)
        metrics = ProcessingMetrics()
        self.metrics = metrics
        translations: Dict[str, str] = {}
        done = 0
        bench(f"run: texts={len(unique)} chunks={len(chunks)} target={settings.target_lang}")

        for chunk in chunks:
            token.raise_if_cancelled()
            self._status(f"Translating chunk {chunk.chunk_index + 1} of {chunk.total_chunks}...")
            chunk_result = self._process_chunk(chunk, token, metrics)
            translations.update(chunk_result)
            if self.run.context is not None and chunk_result:
                self.run.context.add_chunk_translations(chunk, chunk_result)

            done += len(chunk.texts)
            fraction = done / float(len(unique))
            update = ProgressUpdate(
                progress=int(round(fraction * 100)),
                current_chunk=chunk.chunk_index + 1,
                total_chunks=chunk.total_chunks,
                translated_count=len(translations),
                total_texts=len(unique),
                estimated_time_remaining=estimate_remaining(time.monotonic() - metrics.start_time, fraction),
            )
            if self.run.on_progress is not None:
                self.run.on_progress(update)

            if chunk.chunk_index < chunk.total_chunks - 1 and settings.base_delay > 0:
                with RUNTIME_METRICS.timed("wait.chunk_delay"):
                    pause(token, settings.base_delay, self.run.sleep)

        self._status(f"Translated {len(translations)} of {len(unique)} texts")
        return translations

    def memory_lookup(self, text: str) -> str | None:
        memory = self.run.memory
        if memory is None:
            return None
        settings = self.run.settings
        matches = memory.find_similar(text, settings.memory_similarity)
        if matches and matches[0].confidence > settings.memory_confidence:
            return matches[0].target
        return None

    def _partition(self, chunk: Chunk) -> Tuple[Dict[str, str], List[Tuple[str, str]]]:
        hits: Dict[str, str] = {}
        misses: List[Tuple[str, str]] = []
        for text, original in zip(chunk.texts, chunk.original_texts):
            cached = self.memory_lookup(text)
            if cached is not None:
                hits[original] = cached
            else:
                misses.append((text, original))
        RUNTIME_METRICS.bump("memory.hits", len(hits))
        RUNTIME_METRICS.bump("memory.misses", len(misses))
        return hits, misses

    def _process_chunk(self, chunk: Chunk, token: CancelToken, metrics: ProcessingMetrics) -> Dict[str, str]:
        settings = self.run.settings
        results, misses = self._partition(chunk)
        metrics.memory_hits += len(results)
        metrics.processed_texts += len(results)
        if not misses:
            return results

        batch = [text for text, _ in misses]
        try:
            candidates = self.translate_batch(batch, token, metrics)
        except (CancelledError, ConfigurationError):
            raise
        except TranslationError as exc:
            metrics.failed_texts += len(misses)
            self._status(
                f"Chunk {chunk.chunk_index + 1} failed after retries ({exc}); continuing with the next chunk"
            )
            return results

        scores: List[QualityScore] = []
        for (text, original), candidate in zip(misses, candidates):
            translation = self.postprocess(candidate)
            if not translation:
                metrics.failed_texts += 1
                continue
            if settings.quality.quality_check:
                scores.append(generate_quality_score(text, translation, settings.target_lang, self.run.memory))
            if self.run.memory is not None:
                self.run.memory.upsert(
                    MemoryEntry(
                        source=text,
                        target=translation,
                        confidence=1.0,
                        timestamp=now_ms(),
                        context=settings.quality.genre,
                    )
                )
            results[original] = translation
            metrics.processed_texts += 1
        if scores and self.run.on_quality_scores is not None:
            self.run.on_quality_scores(scores)
        return results

    def postprocess(self, candidate: str) -> str:
        translation = clean_text(candidate)
        if translation and is_persian(self.run.settings.target_lang):
            translation = clean_persian_translation(translation)
        return translation

    def build_context_block(self, batch: Sequence[str]) -> str:
        settings = self.run.settings
        if settings.context_mode == "none" or self.run.context is None:
            return ""
        options = ContextOptions(
            mode=settings.context_mode,
            max_tokens=settings.context_max_tokens,
            max_examples=settings.context_max_examples,
            similarity_threshold=settings.context_similarity,
        )
        return self.run.context.build(batch, options)

    def translate_batch(self, batch: Sequence[str], token: CancelToken, metrics: ProcessingMetrics) -> List[str]:
        settings = self.run.settings
        prompt = build_prompt(
            batch,
            settings.target_lang,
            settings.quality,
            self.build_context_block(batch),
            settings.separator,
        )

        def generate() -> str:
            return self.run.client.generate(prompt, settings.generation)

        def attempt() -> List[str]:
            token.raise_if_cancelled()
            if settings.call_deadline:
                response = call_with_deadline(generate, token, settings.call_deadline)
            else:
                response = generate()
            token.raise_if_cancelled()
            parsed = self.parser.parse(response, len(batch), settings.separator)
            bench(f"parsed {len(batch)} lines with {self.parser.last_strategy}")
            return parsed

        def on_retry(attempt_no: int, exc: TranslationError) -> None:
            metrics.retry_count += 1

        return self.retry.call(attempt, token, self._status, on_retry)


@dataclass(frozen=True)
class DocumentResult:
    text: str
    translations: Dict[str, str]
    requested: int

    @property
    def complete(self) -> bool:
        return len(self.translations) >= self.requested


def translate_document(
    content: str,
    orchestrator: ChunkOrchestrator,
    cancel_token: CancelToken | None = None,
) -> DocumentResult:
    with RUNTIME_METRICS.timed("stage.parse"):
        lines = parse_document(content)
        texts = unique_texts(lines)
    with RUNTIME_METRICS.timed("stage.translate"):
        translations = orchestrator.translate(texts, cancel_token)
    return DocumentResult(
        text=reconstruct_document(lines, translations),
        translations=translations,
        requested=len(texts),
    )
