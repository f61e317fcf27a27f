"""Recall engine and its (in-process) memory store.

Memories live only as long as the process. Anything durable belongs
behind the MemoryStore protocol.
"""

from __future__ import annotations

import itertools
import re
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, FrozenSet, List, Optional, Protocol

from substrate.engine import Engine
from substrate.signals import EngineId, Priority, Signal, SignalType

_WORD = re.compile(r"[a-z']+")
_STOPWORDS = frozenset({"the", "a", "an", "and", "or", "i", "you", "it", "is", "to", "of", "in", "my", "me"})


@dataclass
class MemoryRecord:
    id: int
    content: str
    created_at: float = field(default_factory=time.time)
    valence: float = 0.0


class MemoryStore(Protocol):
    def add(self, content: str, valence: float = 0.0) -> MemoryRecord: ...

    def search(self, query: str, limit: int = 5) -> List[MemoryRecord]: ...


def _terms(text: str) -> FrozenSet[str]:
    return frozenset(w for w in _WORD.findall(text.lower()) if w not in _STOPWORDS)


class InMemoryMemoryStore:
    """Bounded word-overlap store. Newer memories win ties."""

    def __init__(self, capacity: int = 500):
        self._records: Deque[MemoryRecord] = deque(maxlen=capacity)
        self._ids = itertools.count(1)

    def add(self, content: str, valence: float = 0.0) -> MemoryRecord:
        record = MemoryRecord(id=next(self._ids), content=content, valence=valence)
        self._records.append(record)
        return record

    def search(self, query: str, limit: int = 5) -> List[MemoryRecord]:
        wanted = _terms(query)
        if not wanted:
            return []
        scored = []
        for record in self._records:
            overlap = len(wanted & _terms(record.content))
            if overlap:
                scored.append((overlap, record.id, record))
        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [record for _, _, record in scored[:limit]]

    def __len__(self) -> int:
        return len(self._records)


class MemoryEngine(Engine):
    """Recalls related memories for whatever is in focus, then remembers it."""

    def __init__(self, store: Optional[MemoryStore] = None, limit: int = 5):
        super().__init__(EngineId.MEMORY)
        self.store = store if store is not None else InMemoryMemoryStore()
        self.limit = limit
        self.recent_recalls: List[MemoryRecord] = []

    def subscribes_to(self) -> FrozenSet[SignalType]:
        return frozenset({SignalType.ATTENTION_FOCUS, SignalType.MEMORY_QUERY})

    def process(self, signals: List[Signal]) -> None:
        for signal in signals:
            if signal.type == SignalType.ATTENTION_FOCUS:
                content = str(signal.payload.get("content", ""))
                self.recall(content)
                if content:
                    self.store.add(content, valence=self.self_state.snapshot.valence)
            elif signal.type == SignalType.MEMORY_QUERY:
                self.recall(str(signal.payload.get("query", "")))

    def recall(self, query: str) -> List[MemoryRecord]:
        results = self.store.search(query, self.limit) if query else []
        self.recent_recalls = results
        if results:
            self.emit(
                SignalType.MEMORY_RESULT,
                {"query": query, "items": [r.content for r in results]},
                target=[EngineId.BINDER, EngineId.IMAGINATION, EngineId.DEFAULT_MODE, EngineId.ARBITER],
                priority=Priority.MEDIUM,
            )
            self.debug_info = f"Recalled {len(results)} memories"
        else:
            self.debug_info = "No memories found"
        return results
