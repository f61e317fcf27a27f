"""Helpers for engines that act on their own when nothing is happening.

- IdleCadence: decides *when* (idle-tick threshold plus a mood-dependent
  cooldown)
- choose_category: decides *what* (dominant-dimension rules, first match
  wins)
- ThoughtStream / ThoughtComposer: keeps the output stream locally
  coherent by continuing a fresh thought instead of starting a new one
- ContentProvider: where the actual words come from; swap in a
  deterministic provider for tests
"""

from __future__ import annotations

import random
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Protocol, Sequence, Tuple

from .state import SelfState

Clock = Callable[[], float]

CategoryRule = Tuple[str, Callable[[SelfState], bool]]

# Checked in order; the first rule whose predicate holds wins.
DEFAULT_CATEGORY_RULES: Sequence[CategoryRule] = (
    ("melancholy", lambda s: s.valence < -0.3),
    ("wonder", lambda s: s.curiosity > 0.7),
    ("connection", lambda s: s.social > 0.6),
    ("restless", lambda s: s.arousal > 0.6),
    ("weary", lambda s: s.energy < 0.3),
    ("contentment", lambda s: s.valence > 0.3),
)

DEFAULT_CATEGORY = "musing"


def choose_category(
    state: SelfState,
    rules: Sequence[CategoryRule] = DEFAULT_CATEGORY_RULES,
    default: str = DEFAULT_CATEGORY,
) -> str:
    for name, predicate in rules:
        if predicate(state):
            return name
    return default


@dataclass
class CadenceConfig:
    """Timing for spontaneous output.

    Attributes:
        idle_threshold_ticks: Consecutive idle ticks required before acting
        base_cooldown_seconds: Cooldown at neutral arousal
        min_cooldown_seconds / max_cooldown_seconds: Clamp for the cooldown
    """
    idle_threshold_ticks: int = 300
    base_cooldown_seconds: float = 8.0
    min_cooldown_seconds: float = 3.0
    max_cooldown_seconds: float = 20.0


class IdleCadence:
    """Tracks idle ticks and the cooldown since the last spontaneous output."""

    def __init__(self, config: Optional[CadenceConfig] = None, clock: Clock = time.monotonic):
        self.config = config or CadenceConfig()
        self.clock = clock
        self.idle_ticks = 0
        self.last_fired: Optional[float] = None

    def reset(self) -> None:
        """Something external happened; start counting idle ticks again."""
        self.idle_ticks = 0

    def cooldown_for(self, state: SelfState) -> float:
        """High arousal shortens the cooldown, calm lengthens it."""
        cfg = self.config
        seconds = cfg.base_cooldown_seconds * (1.5 - state.arousal)
        return max(cfg.min_cooldown_seconds, min(cfg.max_cooldown_seconds, seconds))

    def tick_idle(self, state: SelfState) -> bool:
        """Count one idle tick; True when both thresholds have elapsed."""
        self.idle_ticks += 1
        if self.idle_ticks < self.config.idle_threshold_ticks:
            return False
        if self.last_fired is None:
            return True
        return self.clock() - self.last_fired >= self.cooldown_for(state)

    def mark_fired(self) -> None:
        self.last_fired = self.clock()


@dataclass
class StreamEntry:
    category: str
    text: str
    at: float
    source: str = ""
    continuation: bool = False


class ThoughtStream:
    """Shared record of recent spontaneous outputs.

    Several engines can write to one stream so that whoever speaks next
    can pick up the thread.
    """

    def __init__(self, freshness_seconds: float = 20.0, maxlen: int = 20, clock: Clock = time.monotonic):
        self.freshness_seconds = freshness_seconds
        self.clock = clock
        self._entries: Deque[StreamEntry] = deque(maxlen=maxlen)

    def record(self, category: str, text: str, source: str = "", continuation: bool = False) -> StreamEntry:
        entry = StreamEntry(
            category=category,
            text=text,
            at=self.clock(),
            source=source,
            continuation=continuation,
        )
        self._entries.append(entry)
        return entry

    @property
    def latest(self) -> Optional[StreamEntry]:
        return self._entries[-1] if self._entries else None

    def fresh(self) -> Optional[StreamEntry]:
        """The latest entry if it is still within the freshness window."""
        latest = self.latest
        if latest is None:
            return None
        if self.clock() - latest.at <= self.freshness_seconds:
            return latest
        return None

    def recent_text(self, limit: int = 3) -> str:
        return " ".join(e.text for e in list(self._entries)[-limit:])

    def __len__(self) -> int:
        return len(self._entries)


class ContentProvider(Protocol):
    def pick(self, category: str) -> str: ...

    def connector(self) -> str: ...


class RandomContentProvider:
    """Draws from fixed pools with a seedable RNG."""

    def __init__(
        self,
        pools: Dict[str, List[str]],
        connectors: Sequence[str] = ("And yet...", "Which makes me think...", "Still,"),
        rng: Optional[random.Random] = None,
        default: str = DEFAULT_CATEGORY,
    ):
        if not pools:
            raise ValueError("RandomContentProvider needs at least one pool")
        self.pools = pools
        self.connectors = list(connectors)
        self.rng = rng or random.Random()
        self.default = default if default in pools else next(iter(pools))

    def pick(self, category: str) -> str:
        pool = self.pools.get(category) or self.pools[self.default]
        return self.rng.choice(pool)

    def connector(self) -> str:
        return self.rng.choice(self.connectors) if self.connectors else ""


@dataclass
class ComposedThought:
    category: str
    text: str
    continuation: bool = False


class ThoughtComposer:
    """Picks a category and words for the next spontaneous thought."""

    def __init__(
        self,
        provider: ContentProvider,
        stream: ThoughtStream,
        rules: Sequence[CategoryRule] = DEFAULT_CATEGORY_RULES,
        default: str = DEFAULT_CATEGORY,
    ):
        self.provider = provider
        self.stream = stream
        self.rules = rules
        self.default = default

    def compose(self, state: SelfState) -> ComposedThought:
        # Only an original thought gets continued; after a continuation the
        # mood picks the category again.
        fresh = self.stream.fresh()
        if fresh is not None and not fresh.continuation:
            connector = self.provider.connector()
            body = self.provider.pick(fresh.category)
            text = f"{connector} {body}".strip()
            return ComposedThought(category=fresh.category, text=text, continuation=True)
        category = choose_category(state, self.rules, self.default)
        return ComposedThought(category=category, text=self.provider.pick(category))
