"""Console output, progress bars and run metrics."""
from __future__ import annotations

from collections import defaultdict
from contextlib import contextmanager
import time

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

BENCH_MODE = False


def get_console() -> Console:
    return Console()


def cprint(console, text: str, style: str | None = None) -> None:
    if style:
        console.print(f"[{style}]{text}[/]")
    else:
        console.print(text)


def set_bench_mode(enabled: bool) -> None:
    global BENCH_MODE
    BENCH_MODE = bool(enabled)


def bench(message: str) -> None:
    if BENCH_MODE:
        print(f"[bench] {message}")


def progress_bar(console) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=console,
    )


class RuntimeMetrics:
    def __init__(self) -> None:
        self.seconds = defaultdict(float)
        self.calls = defaultdict(int)
        self.counters = defaultdict(int)

    def reset(self) -> None:
        self.seconds.clear()
        self.calls.clear()
        self.counters.clear()

    @contextmanager
    def timed(self, key: str):
        start = time.perf_counter()
        try:
            yield
        finally:
            self.seconds[key] += time.perf_counter() - start
            self.calls[key] += 1

    def bump(self, key: str, amount: int = 1) -> None:
        self.counters[key] += amount

    def total_by_prefix(self, prefix: str) -> float:
        return sum(value for name, value in self.seconds.items() if name.startswith(prefix))


RUNTIME_METRICS = RuntimeMetrics()


def print_runtime_breakdown(console, total_elapsed: float) -> None:
    parse_elapsed = RUNTIME_METRICS.seconds.get("stage.parse", 0.0)
    translate_elapsed = RUNTIME_METRICS.seconds.get("stage.translate", 0.0)
    remote_elapsed = RUNTIME_METRICS.total_by_prefix("remote.")
    wait_elapsed = RUNTIME_METRICS.total_by_prefix("wait.")
    other_elapsed = max(0.0, total_elapsed - (parse_elapsed + translate_elapsed))

    cprint(console, "Timing breakdown:", "bold cyan")
    cprint(console, f"- parse: {parse_elapsed:.1f}s", "cyan")
    cprint(console, f"- translate: {translate_elapsed:.1f}s", "cyan")
    cprint(console, f"  - remote calls: {remote_elapsed:.1f}s", "cyan")
    cprint(console, f"  - waits (delay/backoff): {wait_elapsed:.1f}s", "cyan")
    if other_elapsed >= 0.1:
        cprint(console, f"- other: {other_elapsed:.1f}s", "cyan")

    hits = RUNTIME_METRICS.counters.get("memory.hits", 0)
    misses = RUNTIME_METRICS.counters.get("memory.misses", 0)
    if hits or misses:
        rate = (hits / float(hits + misses)) * 100.0
        cprint(console, f"Memory: hits={hits}, misses={misses} ({rate:.1f}%)", "cyan")
    retries = RUNTIME_METRICS.counters.get("retry.attempts", 0)
    if retries:
        cprint(
            console,
            (
                "Retry counters: "
                f"total={retries} "
                f"network={RUNTIME_METRICS.counters.get('retry.network', 0)} "
                f"rate_limit={RUNTIME_METRICS.counters.get('retry.rate_limit', 0)} "
                f"server={RUNTIME_METRICS.counters.get('retry.server', 0)}"
            ),
            "cyan",
        )
    remote_calls = RUNTIME_METRICS.counters.get("remote.calls", 0)
    if remote_calls:
        avg_remote = RUNTIME_METRICS.seconds.get("remote.generate", 0.0) / float(remote_calls)
        avg_prompt_chars = RUNTIME_METRICS.counters.get("remote.prompt_chars", 0) / float(remote_calls)
        cprint(
            console,
            f"Remote calls: {remote_calls} (avg={avg_remote:.2f}s, avg_prompt_chars={avg_prompt_chars:.0f})",
            "cyan",
        )
