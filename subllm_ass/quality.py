"""Heuristic quality scores handed to reporting observers."""
from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import List, Mapping, Sequence

from .memory import TranslationMemory, similarity
from .models import QualityScore
from .prompts import SUBTITLE_MAX_LINE_CHARS, SUBTITLE_MAX_LINES, QualitySettings, script_ratio, target_script

LATIN_WORD_RE = re.compile(r"[A-Za-z]+")
READING_CHARS_PER_SECOND = 19.0
MAX_READING_SECONDS = 4.0


@dataclass
class QualityMetrics:
    score: int
    length_ratio: float = 0.0
    script_share: float = 0.0
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)


def untranslated_words(translated: str, target_lang: str) -> List[str]:
    if target_script(target_lang) == "latin":
        return []
    return LATIN_WORD_RE.findall(translated)


def generate_quality_score(
    original: str,
    translated: str,
    target_lang: str,
    memory: TranslationMemory | None = None,
) -> QualityScore:
    suggestions: List[str] = []
    length_ratio = len(translated) / float(max(len(original), 1))
    fluency = 100
    if length_ratio > 1.3:
        fluency -= 15
        suggestions.append("Translation may be too long")
    elif length_ratio < 0.7:
        fluency -= 20
        suggestions.append("Translation may be too short")

    accuracy = script_ratio(translated, target_lang) * 100.0
    if accuracy < 70:
        suggestions.append(f"Low share of {target_lang} characters; check the line was really translated")

    consistency = 100.0
    if memory is not None:
        similar = memory.find_similar(original, 0.9)
        if similar:
            best = similar[0]
            consistency = similarity(translated, best.target) * 100.0
            if consistency < 80:
                suggestions.append(f'Similar earlier translation: "{best.target}"')

    overall = (fluency + accuracy + consistency) / 3.0
    return QualityScore(
        overall=int(round(overall)),
        fluency=int(round(fluency)),
        accuracy=int(round(accuracy)),
        consistency=int(round(consistency)),
        suggestions=suggestions,
    )


def validate_translation(original: str, translated: str, target_lang: str) -> QualityMetrics:
    issues: List[str] = []
    suggestions: List[str] = []
    leftovers = untranslated_words(translated, target_lang)
    if leftovers:
        issues.append(f"Untranslated words: {', '.join(leftovers)}")
        suggestions.append("Every source word should be translated")

    length_ratio = len(translated) / float(max(len(original), 1))
    if length_ratio > 1.5:
        issues.append("Translation is much longer than the source")
        suggestions.append("Shorten the translation")
    elif length_ratio < 0.5:
        issues.append("Translation is much shorter than the source")
        suggestions.append("Part of the meaning may be missing")

    lines = translated.replace("\\N", "\n").split("\n")
    if len(lines) > SUBTITLE_MAX_LINES:
        issues.append(f"More than {SUBTITLE_MAX_LINES} lines")
        suggestions.append(f"Reduce the subtitle to at most {SUBTITLE_MAX_LINES} lines")
    for idx, line in enumerate(lines, start=1):
        if len(line) > SUBTITLE_MAX_LINE_CHARS:
            issues.append(f"Line {idx} is longer than {SUBTITLE_MAX_LINE_CHARS} characters")
            suggestions.append(f"Shorten line {idx}")

    ratio = script_ratio(translated, target_lang)
    if ratio < 0.9:
        issues.append(f"Low share of {target_lang} text")
        suggestions.append("Make sure every word was translated")

    if len(translated) / READING_CHARS_PER_SECOND > MAX_READING_SECONDS:
        issues.append("Reading time too long")
        suggestions.append("Shorten the text so it can be read faster")

    score = 100 - len(issues) * 12
    if length_ratio > 1.2 or length_ratio < 0.8:
        score -= 8
    if len(lines) > SUBTITLE_MAX_LINES:
        score -= 15
    if leftovers:
        score -= 25
    return QualityMetrics(
        score=max(0, min(100, score)),
        length_ratio=length_ratio,
        script_share=ratio * 100.0,
        issues=issues,
        suggestions=suggestions,
    )


def average_score(scores: Sequence[QualityScore]) -> float:
    if not scores:
        return 0.0
    return sum(score.overall for score in scores) / float(len(scores))


def quality_report(translations: Mapping[str, str], target_lang: str, settings: QualitySettings) -> str:
    if not translations:
        return "Quality report: no translations."
    metrics = [validate_translation(src, dst, target_lang) for src, dst in translations.items()]
    leftovers = sum(len(untranslated_words(dst, target_lang)) for dst in translations.values())
    count = float(len(metrics))
    return "\n".join(
        [
            "Quality report:",
            f"Overall score: {sum(m.score for m in metrics) / count:.1f}/100",
            f"Length ratio: {sum(m.length_ratio for m in metrics) / count:.2f}",
            f"Issues: {sum(len(m.issues) for m in metrics)}",
            f"Untranslated words: {leftovers}",
            f"Target script share: {sum(m.script_share for m in metrics) / count:.1f}%",
            f"Genre: {settings.genre}",
            f"Formality: {settings.formality}",
            f"Status: {'complete' if leftovers == 0 else 'incomplete'}",
        ]
    )
