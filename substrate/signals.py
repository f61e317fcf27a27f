"""Signal definitions for the mind substrate.

Signals are the only way engines talk to each other. Each one carries a
type tag, the emitting engine, an optional target set, a payload and a
priority tier.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Any, FrozenSet, Iterable, Mapping, Optional, Union


class SignalType(str, Enum):
    """Signal tags routed by the bus.

    - TEXT_INPUT: Raw text typed by the person
    - PERCEPTION_RESULT: A perceived item (text, image description...)
    - ATTENTION_FOCUS: Something the mind is now attending to
    - EMOTION_DETECTED: Emotions read from the person's words
    - EMPATHIC_STATE: How the mind is resonating with the person
    - PERSON_STATE_UPDATE / LOVE_FIELD_UPDATE: Relationship modulators
    - MEMORY_QUERY / MEMORY_RESULT: Recall request and answer
    - THOUGHT: "I want to think" - picked up by the thought bridge
    - THOUGHT_RESPONSE: Answer injected back by the thought bridge
    - REFLECTION_REQUEST / REFLECTION_RESULT: Inner-voice reflection
    - DEFAULT_MODE_THOUGHT: Spontaneous wandering thought
    - REPLAY_MEMORY / PERSPECTIVE_UPDATE / GROWTH_INSIGHT: Growth loop
    - EXPRESSION: Something the mind says out loud
    """
    TEXT_INPUT = "text-input"
    PERCEPTION_RESULT = "perception-result"
    ATTENTION_FOCUS = "attention-focus"
    EMOTION_DETECTED = "emotion-detected"
    EMPATHIC_STATE = "empathic-state"
    PERSON_STATE_UPDATE = "person-state-update"
    LOVE_FIELD_UPDATE = "love-field-update"
    MEMORY_QUERY = "memory-query"
    MEMORY_RESULT = "memory-result"
    THOUGHT = "thought"
    THOUGHT_RESPONSE = "thought-response"
    REFLECTION_REQUEST = "reflection-request"
    REFLECTION_RESULT = "reflection-result"
    DEFAULT_MODE_THOUGHT = "default-mode-thought"
    REPLAY_MEMORY = "replay-memory"
    PERSPECTIVE_UPDATE = "perspective-update"
    GROWTH_INSIGHT = "growth-insight"
    EXPRESSION = "expression"


class Priority(IntEnum):
    """Ordinal priority tiers. Carried on every signal; delivery order
    within a batch is emission order regardless of tier."""
    IDLE = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class EngineId(str, Enum):
    """Well-known engine identifiers.

    Some of these (IMAGINATION, REPLAY, STRATEGY...) have no engine in the
    default society. Signals aimed at them are dropped by the bus.
    """
    TEXT_INPUT = "text-input"
    EMOTION_INFERENCE = "emotion-inference"
    EMPATHIC_COUPLING = "empathic-coupling"
    PERSON_STATE = "person-state"
    MEMORY = "memory"
    DEFAULT_MODE = "default-mode"
    GROWTH = "growth"
    ARBITER = "arbiter"
    EXPRESSION = "expression"
    BINDER = "binder"
    IMAGINATION = "imagination"
    REPLAY = "replay"
    STRATEGY = "strategy"
    VALUES = "values"
    THOUGHT_BRIDGE = "thought-bridge"
    REFLECTION_BRIDGE = "reflection-bridge"
    EXTERNAL = "external"


TargetSpec = Union[str, Iterable[str], None]


def _normalize_target(target: TargetSpec) -> Optional[FrozenSet[str]]:
    if target is None:
        return None
    if isinstance(target, str):
        return frozenset([_as_id(target)])
    return frozenset(_as_id(t) for t in target)


def _as_id(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


@dataclass(frozen=True)
class Signal:
    """An immutable routed message.

    Attributes:
        type: The signal tag
        source: Id of the emitting engine
        payload: Type-specific structured value, read-only once built
        target: None for broadcast, otherwise the set of engine ids
        priority: Ordinal tier
        timestamp: Monotonic instant of emission
    """
    type: SignalType
    source: str
    payload: Mapping[str, Any] = field(default_factory=dict)
    target: Optional[FrozenSet[str]] = None
    priority: Priority = Priority.MEDIUM
    timestamp: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        # One signal reaches every subscriber; nobody may edit it in place.
        object.__setattr__(self, "payload", MappingProxyType(dict(self.payload)))

    def is_for(self, engine_id: str) -> bool:
        return self.target is None or engine_id in self.target

    def __str__(self) -> str:
        target = "*" if self.target is None else ",".join(sorted(self.target))
        return f"{self.type.value} {self.source}->{target} [{self.priority.name}]"


def make_signal(
    type: SignalType,
    source: Union[str, EngineId],
    payload: Optional[Mapping[str, Any]] = None,
    target: TargetSpec = None,
    priority: Priority = Priority.MEDIUM,
    timestamp: Optional[float] = None,
) -> Signal:
    """Build a signal, normalising ids and the target set."""
    return Signal(
        type=SignalType(type),
        source=_as_id(source),
        payload=payload or {},
        target=_normalize_target(target),
        priority=Priority(priority),
        timestamp=time.monotonic() if timestamp is None else timestamp,
    )
