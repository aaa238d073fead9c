"""Recover one translation per input line from a free-text model answer.

Strategies run in order; each either returns a candidate list or ``None`` to
pass. A candidate is accepted when it has the expected length. The last
strategy always answers, and the result is truncated or padded with ``""``.
"""
from __future__ import annotations

import json
import re
from typing import List, Sequence

from .prompts import script_ratio

ENUMERATION_PREFIX_RE = re.compile(r"^\s*(?:\(?\d{1,4}[.)]|[*•·])\s+")
PURE_ENUMERATION_RE = re.compile(r"^\s*(?:\(?\d{1,4}[.)]|[-*•·])\s*$")
CODE_FENCE_RE = re.compile(r"```(?:json|text)?", flags=re.IGNORECASE)


def strip_enumeration(line: str) -> str:
    return ENUMERATION_PREFIX_RE.sub("", line, count=1).strip()


def strip_code_fences(text: str) -> str:
    return CODE_FENCE_RE.sub("", text).replace("```", "")


def extract_json_array(text: str) -> List[str] | None:
    cleaned = strip_code_fences(text.strip())
    start = cleaned.find("[")
    end = cleaned.rfind("]")
    if start == -1 or end == -1 or end <= start:
        return None
    try:
        data = json.loads(cleaned[start : end + 1])
    except json.JSONDecodeError:
        return None
    if isinstance(data, list):
        return [str(item) for item in data]
    return None


class ParseStrategy:
    name = "base"

    def parse(self, response: str, expected: int, separator: str | None) -> List[str] | None:
        raise NotImplementedError


class JsonArrayStrategy(ParseStrategy):
    name = "json_array"

    def parse(self, response, expected, separator):
        if "[" not in response:
            return None
        items = extract_json_array(response)
        if items is None:
            return None
        return [item.strip() for item in items]


class BlankLineStrategy(ParseStrategy):
    name = "blank_line"

    def parse(self, response, expected, separator):
        blocks = [block.strip() for block in re.split(r"\n\s*\n", strip_code_fences(response))]
        blocks = [block for block in blocks if block and block != separator]
        # Numbered blocks belong to the numbered-line strategy.
        if blocks and all(ENUMERATION_PREFIX_RE.match(block) for block in blocks):
            return None
        return blocks


class NumberedLineStrategy(ParseStrategy):
    name = "numbered_line"

    def parse(self, response, expected, separator):
        out = []
        for line in strip_code_fences(response).split("\n"):
            if not line.strip() or PURE_ENUMERATION_RE.match(line):
                continue
            if separator and line.strip() == separator:
                continue
            out.append(strip_enumeration(line))
        return out


class SeparatorStrategy(ParseStrategy):
    name = "separator"

    def parse(self, response, expected, separator):
        if not separator or separator not in response:
            return None
        parts = [part.strip() for part in strip_code_fences(response).split(separator)]
        parts = [part for part in parts if part]
        return [" ".join(part.split("\n")) for part in parts]


class TargetScriptStrategy(ParseStrategy):
    """Last resort: keep lines written mostly in the target script."""

    name = "target_script"

    def __init__(self, target_lang: str) -> None:
        self.target_lang = target_lang

    def parse(self, response, expected, separator):
        out = []
        for line in strip_code_fences(response).split("\n"):
            candidate = strip_enumeration(line)
            if not candidate or (separator and candidate == separator):
                continue
            if script_ratio(candidate, self.target_lang) > 0.5:
                out.append(candidate)
        return out


def default_strategies(target_lang: str) -> List[ParseStrategy]:
    return [
        JsonArrayStrategy(),
        BlankLineStrategy(),
        NumberedLineStrategy(),
        SeparatorStrategy(),
        TargetScriptStrategy(target_lang),
    ]


def fit_to_count(items: Sequence[str], expected: int) -> List[str]:
    out = list(items[:expected])
    if len(out) < expected:
        out.extend([""] * (expected - len(out)))
    return out


class ResponseParser:
    def __init__(self, target_lang: str, strategies: Sequence[ParseStrategy] | None = None) -> None:
        self.target_lang = target_lang
        self.strategies = list(strategies) if strategies is not None else default_strategies(target_lang)
        self.last_strategy: str | None = None

    def parse(self, response: str, expected: int, separator: str | None = None) -> List[str]:
        """Always returns exactly ``expected`` strings; ``""`` means no translation."""
        self.last_strategy = None
        if expected <= 0:
            return []
        text = (response or "").replace("\r\n", "\n").strip()
        if not text:
            return [""] * expected
        candidate: List[str] = []
        for strategy in self.strategies:
            result = strategy.parse(text, expected, separator)
            if result is None:
                continue
            candidate = result
            self.last_strategy = strategy.name
            if len(result) == expected:
                break
        return fit_to_count(candidate, expected)


def parse_translation_response(
    response: str,
    expected: int,
    target_lang: str,
    separator: str | None = None,
) -> List[str]:
    return ResponseParser(target_lang).parse(response, expected, separator)
