"""Translation memory: persisted (source, target) pairs with fuzzy lookup."""
from __future__ import annotations

from dataclasses import asdict, dataclass, replace
import json
import os
from pathlib import Path
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from rapidfuzz.distance import Levenshtein

MEMORY_NAMESPACE = "translation_memory"
MEMORY_MAX_ENTRIES = 1000
DEFAULT_STORE_PATH = Path.home() / ".subllm_ass" / "store.json"


def now_ms() -> int:
    return int(time.time() * 1000)


def normalize_source(text: str) -> str:
    return " ".join((text or "").split())


def similarity(a: str, b: str) -> float:
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return (max_len - Levenshtein.distance(a, b)) / float(max_len)


def unique_entries(entries: Iterable[MemoryEntry], capacity: int) -> List[MemoryEntry]:
    """Normalise sources and keep the first (most recent) entry per source."""
    seen = set()
    out: List[MemoryEntry] = []
    for entry in entries:
        entry = replace(entry, source=normalize_source(entry.source))
        if entry.source in seen:
            continue
        seen.add(entry.source)
        out.append(entry)
    return out[:capacity]


@dataclass(frozen=True)
class MemoryEntry:
    source: str
    target: str
    confidence: float = 1.0
    timestamp: int = 0
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data["context"] is None:
            del data["context"]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "MemoryEntry":
        if not isinstance(data, dict):
            raise ValueError(f"memory entry must be an object, got {type(data).__name__}")
        source = data.get("source")
        target = data.get("target")
        if not isinstance(source, str) or not isinstance(target, str):
            raise ValueError("memory entry needs string 'source' and 'target'")
        confidence = data.get("confidence", 1.0)
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise ValueError("memory entry 'confidence' must be a number")
        timestamp = data.get("timestamp", 0)
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise ValueError("memory entry 'timestamp' must be a number")
        context = data.get("context")
        if context is not None and not isinstance(context, str):
            context = str(context)
        return cls(
            source=source,
            target=target,
            confidence=max(0.0, min(1.0, float(confidence))),
            timestamp=int(timestamp),
            context=context,
        )


@dataclass(frozen=True)
class MemoryMatch:
    entry: MemoryEntry
    similarity: float

    @property
    def confidence(self) -> float:
        return self.similarity * self.entry.confidence

    @property
    def target(self) -> str:
        return self.entry.target


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryStore:
    def __init__(self, data: Dict[str, Any] | None = None) -> None:
        self._data: Dict[str, Any] = dict(data or {})

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """All keys live in one JSON object on disk, rewritten atomically."""

    def __init__(self, path: Path | str = DEFAULT_STORE_PATH) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp_path, self.path)
        except OSError:
            if tmp_path.exists():
                tmp_path.unlink()
            raise

    def get(self, key: str) -> Any:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


class TranslationMemory:
    """Most-recent-first list of entries keyed by normalised source text."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        capacity: int = MEMORY_MAX_ENTRIES,
        namespace: str = MEMORY_NAMESPACE,
        on_warning: Callable[[str], None] | None = None,
    ) -> None:
        self.store: KeyValueStore = store if store is not None else InMemoryStore()
        self.capacity = max(1, int(capacity))
        self.namespace = namespace
        self.on_warning = on_warning
        self.persist_error: OSError | None = None
        self._entries: List[MemoryEntry] = self._load()

    def _load(self) -> List[MemoryEntry]:
        raw = self.store.get(self.namespace)
        if not isinstance(raw, list):
            return []
        entries: List[MemoryEntry] = []
        for item in raw:
            try:
                entries.append(MemoryEntry.from_dict(item))
            except ValueError:
                continue
        return unique_entries(entries, self.capacity)

    def _persist(self) -> None:
        try:
            self.store.set(self.namespace, [entry.to_dict() for entry in self._entries])
            self.persist_error = None
        except OSError as exc:
            # The in-process list stays authoritative for the rest of the run.
            self.persist_error = exc
            if self.on_warning is not None:
                self.on_warning(f"Failed to save translation memory: {exc}")

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> List[MemoryEntry]:
        return list(self._entries)

    def get(self, source: str) -> MemoryEntry | None:
        key = normalize_source(source)
        for entry in self._entries:
            if entry.source == key:
                return entry
        return None

    def upsert(self, entry: MemoryEntry) -> MemoryEntry:
        entry = replace(entry, source=normalize_source(entry.source))
        for idx, existing in enumerate(self._entries):
            if existing.source == entry.source:
                self._entries[idx] = entry
                break
        else:
            self._entries.insert(0, entry)
            del self._entries[self.capacity :]
        self._persist()
        return entry

    def add(self, source: str, target: str, confidence: float = 1.0, context: str | None = None) -> MemoryEntry:
        return self.upsert(
            MemoryEntry(source=source, target=target, confidence=confidence, timestamp=now_ms(), context=context)
        )

    def find_similar(self, text: str, threshold: float = 0.8) -> List[MemoryMatch]:
        """Scan every entry; O(n*m), so callers do it once per unique text."""
        key = normalize_source(text)
        matches = []
        for entry in self._entries:
            score = similarity(key, entry.source)
            if score >= threshold:
                matches.append(MemoryMatch(entry=entry, similarity=score))
        matches.sort(key=lambda match: match.similarity, reverse=True)
        return matches

    def clear(self) -> None:
        self._entries = []
        try:
            self.store.remove(self.namespace)
        except OSError as exc:
            self.persist_error = exc
            if self.on_warning is not None:
                self.on_warning(f"Failed to clear translation memory: {exc}")

    def export(self) -> str:
        return json.dumps([entry.to_dict() for entry in self._entries], ensure_ascii=False, indent=2)

    def import_json(self, payload: str) -> bool:
        try:
            data = json.loads(payload)
        except (TypeError, json.JSONDecodeError):
            return False
        if not isinstance(data, list):
            return False
        try:
            entries = [MemoryEntry.from_dict(item) for item in data]
        except ValueError:
            return False
        self._entries = unique_entries(entries, self.capacity)
        self._persist()
        return True
