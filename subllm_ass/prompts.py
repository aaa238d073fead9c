"""Prompt construction and text normalisation for subtitle batches."""
from __future__ import annotations

from dataclasses import dataclass
import re
from typing import List, Sequence

GENRES = ("movie", "series", "documentary", "animation", "comedy", "drama", "action")
FORMALITY_LEVELS = ("formal", "informal", "neutral")
GENRE_CONTEXT = {
    "movie": "feature film",
    "series": "TV series",
    "documentary": "documentary",
    "animation": "animation",
    "comedy": "comedy",
    "drama": "drama",
    "action": "action",
}
FORMALITY_INSTRUCTIONS = {
    "formal": "formal and polite",
    "informal": "informal and friendly, everyday spoken language",
    "neutral": "balanced, neither stiff nor slangy",
}
SUBTITLE_MAX_LINE_CHARS = 42
SUBTITLE_MAX_LINES = 2
DEFAULT_SEPARATOR = "<<<SEP>>>"

# Unicode blocks per target script; Latin is the fallback.
SCRIPT_RANGES = {
    "arabic": "\u0600-\u06FF\u0750-\u077F\u08A0-\u08FF\uFB50-\uFDFF\uFE70-\uFEFF",
    "cyrillic": "\u0400-\u04FF\u0500-\u052F",
    "greek": "\u0370-\u03FF\u1F00-\u1FFF",
    "hebrew": "\u0590-\u05FF\uFB1D-\uFB4F",
    "cjk": "\u3040-\u30FF\u3400-\u4DBF\u4E00-\u9FFF\uF900-\uFAFF",
    "hangul": "\u1100-\u11FF\u3130-\u318F\uAC00-\uD7AF",
    "devanagari": "\u0900-\u097F",
    "thai": "\u0E00-\u0E7F",
    "latin": "A-Za-z\u00C0-\u024F",
}
LANGUAGE_SCRIPTS = {
    "persian": "arabic",
    "farsi": "arabic",
    "fa": "arabic",
    "arabic": "arabic",
    "ar": "arabic",
    "urdu": "arabic",
    "ur": "arabic",
    "russian": "cyrillic",
    "ru": "cyrillic",
    "ukrainian": "cyrillic",
    "uk": "cyrillic",
    "bulgarian": "cyrillic",
    "serbian": "cyrillic",
    "greek": "greek",
    "el": "greek",
    "hebrew": "hebrew",
    "he": "hebrew",
    "chinese": "cjk",
    "zh": "cjk",
    "japanese": "cjk",
    "ja": "cjk",
    "korean": "hangul",
    "ko": "hangul",
    "hindi": "devanagari",
    "hi": "devanagari",
    "thai": "thai",
    "th": "thai",
}
PERSIAN_NAMES = {"persian", "farsi", "fa", "fa-ir", "fa_ir"}


@dataclass(frozen=True)
class QualitySettings:
    genre: str = "movie"
    formality: str = "neutral"
    preserve_names: bool = False
    contextual_translation: bool = True
    quality_check: bool = False


def normalize_language(target_lang: str) -> str:
    return (target_lang or "").strip().lower()


def is_persian(target_lang: str) -> bool:
    return normalize_language(target_lang) in PERSIAN_NAMES


def target_script(target_lang: str) -> str:
    lowered = normalize_language(target_lang)
    script = LANGUAGE_SCRIPTS.get(lowered)
    if script is None:
        script = LANGUAGE_SCRIPTS.get(lowered.split("-")[0].split("_")[0], "latin")
    return script


def script_char_re(target_lang: str) -> re.Pattern:
    return re.compile(f"[{SCRIPT_RANGES[target_script(target_lang)]}]")


def script_ratio(text: str, target_lang: str) -> float:
    letters = [ch for ch in text if not ch.isspace()]
    if not letters:
        return 0.0
    hits = len(script_char_re(target_lang).findall(text))
    return hits / float(len(letters))


def clean_text(text: str) -> str:
    cleaned = (text or "").strip()
    cleaned = re.sub(r"\s+", " ", cleaned)
    cleaned = cleaned.replace("\u064a", "\u06cc").replace("\u0643", "\u06a9")
    cleaned = re.sub(r"\.{2,}", "...", cleaned)
    cleaned = re.sub(r"\?{2,}", "?", cleaned)
    cleaned = re.sub(r"!{2,}", "!", cleaned)
    return cleaned


def clean_persian_translation(text: str) -> str:
    if not text:
        return ""
    cleaned = text.strip()
    cleaned = cleaned.replace("\u064a", "\u06cc").replace("\u0643", "\u06a9")
    cleaned = re.sub(r"[ \t]{2,}", " ", cleaned)
    cleaned = re.sub(r"\s+([\u060c,.?!\u061f\u061b])", r"\1", cleaned)
    cleaned = re.sub(r"\.{2,}", "\u2026", cleaned)
    cleaned = re.sub(r"\u00ab\s+", "\u00ab", cleaned)
    cleaned = re.sub(r"\s+\u00bb", "\u00bb", cleaned)
    # mi/nemi verb prefixes take a zero-width non-joiner, not a space
    cleaned = re.sub(r"(?<![\u0600-\u06FF])(\u0645\u06cc|\u0646\u0645\u06cc)\s+(?=[\u0600-\u06FF])", "\\1\u200c", cleaned)
    cleaned = re.sub(r"([\u061f!])\1+", r"\1", cleaned)
    cleaned = "\n".join(line.strip() for line in cleaned.split("\n"))
    cleaned = re.sub(r"\n{2,}", "\n", cleaned)
    return cleaned


def serialize_texts(texts: Sequence[str], separator: str | None = None) -> str:
    if separator:
        return f"\n{separator}\n".join(texts)
    return "\n".join(f"{idx + 1}. {text}" for idx, text in enumerate(texts))


def build_prompt(
    texts: Sequence[str],
    target_lang: str,
    settings: QualitySettings | None = None,
    context_block: str = "",
    separator: str | None = None,
) -> str:
    settings = settings or QualitySettings()
    genre = GENRE_CONTEXT.get(settings.genre, "general")
    formality = FORMALITY_INSTRUCTIONS.get(settings.formality, FORMALITY_INSTRUCTIONS["neutral"])
    lines: List[str] = [
        f"You are a professional subtitle translator. Translate each subtitle line into natural, fluent {target_lang}.",
        "",
        f"Content type: {genre}",
        f"Register: {formality}",
        "",
        "Rules:",
        f"1) At most {SUBTITLE_MAX_LINE_CHARS} characters per line and {SUBTITLE_MAX_LINES} lines per subtitle.",
        "2) Keep the meaning and the emotion; prefer short everyday words.",
        "3) Keep line-break codes like \\N exactly where they make sense.",
        "4) Do not add explanations, notes, labels or the source text.",
    ]
    if settings.preserve_names:
        lines.append("5) Keep person and brand names in their original spelling.")
    else:
        lines.append(f"5) Transliterate person, place and brand names into {target_lang}.")
    if context_block and settings.contextual_translation:
        lines.extend(["", "Keep terminology consistent with these earlier translations:", context_block])
    lines.append("")
    if separator:
        lines.append(
            f"Input items are separated by a line containing only {separator}. "
            f"Answer with exactly {len(texts)} translations in the same order, "
            f"separated the same way."
        )
    else:
        lines.append(
            f"Answer with exactly {len(texts)} numbered lines in the same order and numbering "
            "(1. ..., 2. ...), one translation per line."
        )
    lines.extend(["", "Lines to translate:", serialize_texts(texts, separator)])
    return "\n".join(lines)
