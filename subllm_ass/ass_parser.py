"""Parse .ASS documents into typed lines and rebuild them around translated text.

Only the dialogue payload (everything after the 9th comma of a ``Dialogue:``
line) is touched. Inline ``{...}`` override blocks are lifted out of the
payload with their offsets in the markup-free text, so a translated string can
get them back at length-proportional positions.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import math
from pathlib import Path
import re
from typing import Dict, List, Mapping, Sequence, Tuple

DIALOGUE_PREFIX = "Dialogue:"
STYLE_PREFIX = "Style:"
DIALOGUE_FIELDS_BEFORE_TEXT = 9
MARKUP_RE = re.compile(r"\{[^}]*\}")
# b/i/u/s toggles: value 0 closes, anything else opens. A bare \r resets.
TOGGLE_DIRECTIVE_RE = re.compile(r"\\(b|i|u|s|r)(\d*)(?=[\\}]|$)")

KIND_DIALOGUE = "dialogue"
KIND_STYLE = "style"
KIND_INFO = "info"
KIND_OTHER = "other"

SPAN_OPENING = "opening"
SPAN_CLOSING = "closing"
SPAN_STANDALONE = "standalone"


@dataclass(frozen=True)
class MarkupSpan:
    token: str
    offset: int
    kind: str = SPAN_STANDALONE


@dataclass(frozen=True)
class DialogueLine:
    kind: str
    raw_line: str
    text: str | None = None
    markup_spans: Tuple[MarkupSpan, ...] = field(default_factory=tuple)

    @property
    def is_translatable(self) -> bool:
        return self.kind == KIND_DIALOGUE and bool(self.text)


def classify_markup(token: str) -> str:
    for match in TOGGLE_DIRECTIVE_RE.finditer(token):
        name, value = match.group(1), match.group(2)
        if name == "r":
            if value == "":
                return SPAN_CLOSING
            continue
        return SPAN_CLOSING if value == "0" else SPAN_OPENING
    return SPAN_STANDALONE


def strip_markup(text: str) -> str:
    return MARKUP_RE.sub("", text)


def split_dialogue_fields(line: str) -> Tuple[List[str], str] | None:
    """Return the first nine fields and the payload, or None for short records."""
    parts = line.split(",")
    if len(parts) < DIALOGUE_FIELDS_BEFORE_TEXT + 1:
        return None
    return parts[:DIALOGUE_FIELDS_BEFORE_TEXT], ",".join(parts[DIALOGUE_FIELDS_BEFORE_TEXT:])


def extract_markup(payload: str) -> Tuple[str, Tuple[MarkupSpan, ...]]:
    """Strip override blocks from ``payload``.

    Offsets are positions in the final, trimmed clean text.
    """
    spans: List[Tuple[str, int]] = []
    clean_parts: List[str] = []
    clean_len = 0
    last = 0
    for match in MARKUP_RE.finditer(payload):
        chunk = payload[last : match.start()]
        clean_parts.append(chunk)
        clean_len += len(chunk)
        spans.append((match.group(0), clean_len))
        last = match.end()
    clean_parts.append(payload[last:])
    untrimmed = "".join(clean_parts)
    text = untrimmed.strip()
    lead = len(untrimmed) - len(untrimmed.lstrip())
    out = tuple(
        MarkupSpan(token=token, offset=min(max(0, offset - lead), len(text)), kind=classify_markup(token))
        for token, offset in spans
    )
    return text, out


def _split_line_ending(raw: str) -> Tuple[str, str]:
    if raw.endswith("\r"):
        return raw[:-1], "\r"
    return raw, ""


def parse_line(raw: str) -> DialogueLine:
    body, _ = _split_line_ending(raw)
    stripped = body.strip()
    if stripped.startswith(DIALOGUE_PREFIX):
        split = split_dialogue_fields(body)
        if split is None:
            return DialogueLine(kind=KIND_DIALOGUE, raw_line=raw, text="")
        _, payload = split
        text, spans = extract_markup(payload)
        return DialogueLine(kind=KIND_DIALOGUE, raw_line=raw, text=text, markup_spans=spans)
    if stripped.startswith(STYLE_PREFIX):
        return DialogueLine(kind=KIND_STYLE, raw_line=raw)
    if stripped.startswith("[") or ":" in stripped:
        return DialogueLine(kind=KIND_INFO, raw_line=raw)
    return DialogueLine(kind=KIND_OTHER, raw_line=raw)


def parse_document(content: str) -> List[DialogueLine]:
    """One record per physical line; ``\\r`` stays in ``raw_line``."""
    return [parse_line(raw) for raw in content.split("\n")]


def dialogue_lines(lines: Sequence[DialogueLine]) -> List[DialogueLine]:
    return [line for line in lines if line.is_translatable]


def unique_texts(lines: Sequence[DialogueLine]) -> List[str]:
    seen = set()
    out: List[str] = []
    for line in dialogue_lines(lines):
        if line.text in seen:
            continue
        seen.add(line.text)
        out.append(line.text)
    return out


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def reinsert_markup(translated: str, spans: Sequence[MarkupSpan], original_length: int) -> str:
    if not spans:
        return translated
    ratio = len(translated) / float(max(original_length, 1))
    # Descending offset, later spans first on ties, so equal insertion points
    # keep the original token order.
    ordered = sorted(enumerate(spans), key=lambda item: (item[1].offset, item[0]), reverse=True)
    result = translated
    for _, span in ordered:
        insert_at = min(_round_half_up(span.offset * ratio), len(translated))
        result = result[:insert_at] + span.token + result[insert_at:]
    return result


def reconstruct_dialogue(
    line: DialogueLine,
    translated_text: str,
    spans: Sequence[MarkupSpan] | None = None,
) -> str:
    body, ending = _split_line_ending(line.raw_line)
    split = split_dialogue_fields(body)
    if split is None:
        return line.raw_line
    fields, _ = split
    use_spans = line.markup_spans if spans is None else spans
    # The model must not contribute override blocks of its own.
    cleaned = strip_markup(translated_text)
    payload = reinsert_markup(cleaned, use_spans, len(line.text or ""))
    return ",".join(fields + [payload]) + ending


def reconstruct_document(lines: Sequence[DialogueLine], translations: Mapping[str, str]) -> str:
    out: List[str] = []
    for line in lines:
        if line.is_translatable and line.text in translations:
            out.append(reconstruct_dialogue(line, translations[line.text]))
        else:
            out.append(line.raw_line)
    return "\n".join(out)


def document_stats(lines: Sequence[DialogueLine]) -> Dict[str, int]:
    stats = {KIND_DIALOGUE: 0, KIND_STYLE: 0, KIND_INFO: 0, KIND_OTHER: 0}
    for line in lines:
        stats[line.kind] += 1
    stats["translatable"] = len(dialogue_lines(lines))
    stats["unique"] = len(unique_texts(lines))
    stats["markup_spans"] = sum(len(line.markup_spans) for line in dialogue_lines(lines))
    return stats


def read_subtitle(path: Path) -> Tuple[str, bool]:
    data = path.read_bytes()
    has_bom = data.startswith(b"\xef\xbb\xbf")
    text = None
    last_err = None
    for enc in ("utf-8-sig", "utf-8", "cp1252", "latin-1"):
        try:
            text = data.decode(enc)
            break
        except UnicodeDecodeError as exc:
            last_err = exc
    if text is None:
        raise RuntimeError(f"Failed to decode {path} ({last_err})")
    return text, has_bom


def write_subtitle(path: Path, text: str, bom: bool) -> None:
    data = text.encode("utf-8")
    if bom:
        data = b"\xef\xbb\xbf" + data
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
