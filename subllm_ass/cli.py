from __future__ import annotations

import argparse
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
import sys
import time
from typing import List, Sequence

from .ass_parser import document_stats, parse_document, read_subtitle, write_subtitle
from .config import (
    BACKENDS,
    CONTEXT_MODES,
    DEFAULT_BASE_DELAY,
    DEFAULT_CHUNKS,
    DEFAULT_TARGET,
    build_client,
    memory_path,
    settings_from_args,
)
from .console import RUNTIME_METRICS, cprint, get_console, print_runtime_breakdown, progress_bar, set_bench_mode
from .context import TranslationContext
from .errors import CancelledError, ConfigurationError
from .memory import InMemoryStore, JsonFileStore, TranslationMemory
from .models import ProgressUpdate, QualityScore
from .orchestrator import ChunkOrchestrator, RunContext, translate_document
from .prompts import FORMALITY_LEVELS, GENRES
from .quality import average_score, quality_report
from .retry import MAX_RETRIES, RATE_LIMIT_DELAY, CancelToken

LANGUAGE_SUFFIXES = {
    "persian": "fa",
    "farsi": "fa",
    "english": "en",
    "spanish": "es",
    "french": "fr",
    "german": "de",
    "arabic": "ar",
    "russian": "ru",
    "turkish": "tr",
    "japanese": "ja",
    "korean": "ko",
    "chinese": "zh",
}


def target_suffix_for_lang(target_lang: str) -> str:
    lang = target_lang.strip().lower()
    if lang in LANGUAGE_SUFFIXES:
        return LANGUAGE_SUFFIXES[lang]
    if 2 <= len(lang) <= 5 and lang.replace("-", "").replace("_", "").isalpha():
        return lang
    return "translated"


def build_output_path(in_path: Path, target_lang: str) -> Path:
    suffix = target_suffix_for_lang(target_lang)
    stem = in_path.stem
    if stem.lower().endswith(f"_{suffix}"):
        stem = stem[: -(len(suffix) + 1)]
    return in_path.with_name(f"{stem}_{suffix}{in_path.suffix}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Translate .ASS subtitle dialogue with an LLM.")
    parser.add_argument("--in", dest="in_path", help="Input .ass file")
    parser.add_argument("--out", dest="out_path", help="Output .ass file (default: <input>_<lang>.ass)")
    parser.add_argument("--target", default=DEFAULT_TARGET, help="Target language")
    parser.add_argument("--backend", choices=BACKENDS, default="gemini", help="Remote model backend")
    parser.add_argument("--model", help="Model name (backend default when omitted)")
    parser.add_argument("--api-key", help="Gemini API key (default: $GEMINI_API_KEY)")
    parser.add_argument("--host", help="Ollama host")
    parser.add_argument("--keep-alive", default="10m", help="Ollama keep_alive value (e.g. 10m, 0)")
    parser.add_argument("--chunks", type=int, default=DEFAULT_CHUNKS, help="Number of chunks (at most 5)")
    parser.add_argument("--max-retries", type=int, default=MAX_RETRIES, help="Retries per chunk")
    parser.add_argument("--base-delay", type=float, default=DEFAULT_BASE_DELAY, help="Seconds between chunks")
    parser.add_argument("--quota-delay", type=float, default=RATE_LIMIT_DELAY, help="Seconds to wait on rate limits")
    parser.add_argument("--timeout", type=float, default=30, help="HTTP timeout seconds")
    parser.add_argument("--call-deadline", type=float, help="Hard ceiling in seconds for one remote call")
    parser.add_argument("--temperature", type=float, default=0.7, help="LLM temperature")
    parser.add_argument("--top-p", type=float, default=0.95, help="Nucleus sampling")
    parser.add_argument("--top-k", type=int, default=40, help="Top-k sampling")
    parser.add_argument("--max-output-tokens", type=int, default=2048, help="Max tokens per response")
    parser.add_argument("--genre", choices=GENRES, default="movie", help="Content genre")
    parser.add_argument("--formality", choices=FORMALITY_LEVELS, default="neutral", help="Register")
    parser.add_argument("--preserve-names", action="store_true", help="Keep names in their original spelling")
    parser.add_argument("--context-mode", choices=CONTEXT_MODES, default="limited", help="Context sent with batches")
    parser.add_argument("--context-tokens", type=int, default=1000, help="Token budget of the context block")
    parser.add_argument("--separator", action="store_true", help="Delimit batch items with a separator line")
    parser.add_argument("--quality-check", action="store_true", help="Score translations and print a report")
    parser.add_argument("--memory-file", help="Translation memory file (default: ~/.subllm_ass/store.json)")
    parser.add_argument("--no-memory", action="store_true", help="Keep the translation memory in-process only")
    parser.add_argument("--memory-export", help="Write the translation memory as JSON to this path")
    parser.add_argument("--memory-import", help="Replace the translation memory with this JSON file")
    parser.add_argument("--memory-clear", action="store_true", help="Clear the translation memory")
    parser.add_argument("--bench", action="store_true", help="Enable detailed per-call bench logging")
    return parser


def open_memory(args, console) -> TranslationMemory:
    store = InMemoryStore() if args.no_memory else JsonFileStore(memory_path(args))
    return TranslationMemory(store, on_warning=lambda message: cprint(console, message, "yellow"))


def run_memory_commands(args, memory: TranslationMemory, console) -> int:
    if args.memory_clear:
        memory.clear()
        cprint(console, "Translation memory cleared.", "bold green")
    if args.memory_import:
        try:
            payload = Path(args.memory_import).read_text(encoding="utf-8")
        except OSError as exc:
            print(f"Cannot read {args.memory_import}: {exc}", file=sys.stderr)
            return 2
        if not memory.import_json(payload):
            print(f"Invalid translation memory file: {args.memory_import}", file=sys.stderr)
            return 2
        cprint(console, f"Imported {len(memory)} memory entries.", "bold green")
    if args.memory_export:
        out = Path(args.memory_export)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(memory.export(), encoding="utf-8")
        cprint(console, f"Exported {len(memory)} memory entries to {out}", "bold green")
    return 0


def run_with_interrupt(orchestrator: ChunkOrchestrator, text: str, token: CancelToken, console):
    """Translate on a worker thread so Ctrl+C can cancel the token."""
    with ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(translate_document, text, orchestrator, token)
        while True:
            try:
                return future.result()
            except KeyboardInterrupt:
                cprint(console, "Cancelling...", "yellow")
                token.cancel()


def translate_file(args, console, memory: TranslationMemory, in_path: Path, out_path: Path) -> int:
    settings = settings_from_args(args)
    try:
        settings.validate()
        client = build_client(args)
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    text, bom = read_subtitle(in_path)
    stats = document_stats(parse_document(text))
    cprint(
        console,
        f"Dialogue lines: {stats['translatable']} ({stats['unique']} unique, {stats['markup_spans']} markup blocks)",
        "cyan",
    )
    if not stats["unique"]:
        cprint(console, "Nothing to translate.", "yellow")
        return 0

    scores: List[QualityScore] = []
    start_total = time.perf_counter()
    token = CancelToken()
    with progress_bar(console) as progress:
        task_id = progress.add_task("Translating", total=100)

        def on_progress(update: ProgressUpdate) -> None:
            progress.update(
                task_id,
                completed=update.progress,
                description=f"Chunk {update.current_chunk}/{update.total_chunks}",
            )

        run = RunContext(
            client=client,
            settings=settings,
            memory=memory,
            context=TranslationContext(memory) if settings.context_mode != "none" else None,
            on_progress=on_progress,
            on_status=lambda message: progress.console.print(f"[yellow]{message}[/]"),
            on_quality_scores=scores.extend,
        )
        orchestrator = ChunkOrchestrator(run)
        try:
            result = run_with_interrupt(orchestrator, text, token, console)
        except CancelledError:
            cprint(console, "Translation cancelled; no output written.", "bold yellow")
            return 1
        except ConfigurationError as exc:
            print(str(exc), file=sys.stderr)
            return 2

    write_subtitle(out_path, result.text, bom)
    total_elapsed = time.perf_counter() - start_total
    metrics = orchestrator.metrics
    style = "bold green" if result.complete else "bold yellow"
    cprint(console, f"Translated texts: {len(result.translations)}/{result.requested}", style)
    if metrics is not None:
        cprint(
            console,
            f"Memory hits: {metrics.memory_hits}, failed: {metrics.failed_texts}, retries: {metrics.retry_count}",
            "cyan",
        )
    cprint(console, f"Output written to: {out_path}", "bold green")
    cprint(console, f"Elapsed (total): {total_elapsed:.1f}s", "bold green")
    if settings.quality.quality_check:
        if scores:
            cprint(console, f"Average quality score: {average_score(scores):.1f}/100", "cyan")
        cprint(console, quality_report(result.translations, settings.target_lang, settings.quality), "cyan")
    print_runtime_breakdown(console, total_elapsed)
    return 0 if result.complete else 1


def main(argv: Sequence[str] | None = None) -> int:
    console = get_console()
    RUNTIME_METRICS.reset()
    args = build_parser().parse_args(argv)
    set_bench_mode(args.bench)
    if args.bench:
        cprint(console, f"Bench mode ON | backend={args.backend} | context={args.context_mode}", "bold cyan")

    memory = open_memory(args, console)
    code = run_memory_commands(args, memory, console)
    if code != 0 or not args.in_path:
        if not args.in_path and not (args.memory_clear or args.memory_import or args.memory_export):
            print("Missing --in", file=sys.stderr)
            return 2
        return code

    in_path = Path(args.in_path).expanduser()
    if not in_path.exists():
        print(f"Input not found: {in_path}", file=sys.stderr)
        return 2
    out_path = Path(args.out_path).expanduser() if args.out_path else build_output_path(in_path, args.target)
    return translate_file(args, console, memory, in_path, out_path)


if __name__ == "__main__":
    raise SystemExit(main())
