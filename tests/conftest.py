"""Shared fixtures: a scripted model client and a small .ass document."""
from __future__ import annotations

import re

import pytest

from subllm_ass.console import RUNTIME_METRICS

NUMBERED_RE = re.compile(r"^\d+\.\s")

SAMPLE_ASS = "\r\n".join(
    [
        "[Script Info]",
        "Title: Sample",
        "ScriptType: v4.00+",
        "",
        "[V4+ Styles]",
        "Format: Name, Fontname, Fontsize, PrimaryColour, Bold, Italic",
        "Style: Default,Arial,20,&H00FFFFFF,0,0",
        "",
        "[Events]",
        "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text",
        "Dialogue: 0,0:00:01.00,0:00:02.00,Default,,0,0,0,,Hello there",
        "Dialogue: 0,0:00:02.00,0:00:03.00,Default,,0,0,0,,{\\b1}Watch out{\\b0}, Tom!",
        "Dialogue: 0,0:00:03.00,0:00:04.00,Default,,0,0,0,,Hello there",
        "Dialogue: 0,0:00:04.00,0:00:05.00,Default,,0,0,0,,{\\pos(10,10)}",
        "Comment: 0,0:00:05.00,0:00:06.00,Default,,0,0,0,,not dialogue",
        "",
    ]
)


def prompt_lines(prompt: str) -> list:
    """Recover the numbered input lines from a prompt built by build_prompt."""
    body = prompt.rsplit("Lines to translate:\n", 1)[1]
    return [NUMBERED_RE.sub("", line, count=1) for line in body.split("\n") if line.strip()]


class FakeClient:
    """Answers with numbered ``translate(text)`` lines, or replays ``script`` items.

    Script items are exceptions (raised), strings (returned verbatim) or
    ``None`` (fall through to the numbered answer).
    """

    def __init__(self, translate=None, script=None):
        self.translate = translate or (lambda text: f"T[{text}]")
        self.script = list(script or [])
        self.prompts = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    def generate(self, prompt, generation=None):
        self.prompts.append(prompt)
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            if item is not None:
                return item
        lines = prompt_lines(prompt)
        return "\n".join(f"{idx + 1}. {self.translate(text)}" for idx, text in enumerate(lines))


@pytest.fixture(autouse=True)
def reset_metrics():
    RUNTIME_METRICS.reset()
    yield
    RUNTIME_METRICS.reset()


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def sleeps():
    """Recorded instead of slept."""
    return []


@pytest.fixture
def no_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def sample_ass():
    return SAMPLE_ASS
