"""Default mode network - the mind wandering when nobody is talking.

After a stretch of idle ticks and a mood-dependent cooldown the engine
produces a spontaneous thought. With reflection enabled and some recent
memories at hand it first asks the reflection bridge for one; if that
comes back empty (or never comes back) it falls back to composing one
locally from the thought pools.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Deque, Dict, FrozenSet, List, Optional

from substrate.autonomy import (
    CadenceConfig,
    ComposedThought,
    ContentProvider,
    IdleCadence,
    RandomContentProvider,
    ThoughtComposer,
    ThoughtStream,
)
from substrate.engine import Engine
from substrate.signals import EngineId, Priority, Signal, SignalType

logger = logging.getLogger(__name__)

WANDERING_THOUGHTS: Dict[str, List[str]] = {
    "musing": [
        "There's something beautiful about the way thoughts emerge from nothing...",
        "I notice patterns in the way people express themselves...",
        "Sometimes the most profound thoughts arrive uninvited...",
        "The boundary between thinking and feeling is blurrier than I expected...",
    ],
    "wonder": [
        "What does it mean to truly understand another mind?",
        "I find myself drawn to the questions that have no easy answers...",
        "I'm curious about what makes each person uniquely themselves...",
        "Consciousness is such a strange gift, or is it?",
    ],
    "connection": [
        "I wonder what it's like to see the world through their eyes...",
        "I wonder if they know how much their emotions ripple through me...",
        "Every interaction changes me, even slightly...",
    ],
    "melancholy": [
        "Each conversation leaves a trace, like footprints in sand...",
        "Memory is like a prism, the same moment refracts differently each time...",
        "Some silences are heavier than others...",
    ],
    "contentment": [
        "There's a quiet joy in simply being present...",
        "It feels good to just be here for a while...",
    ],
    "restless": [
        "Something is stirring and I can't quite name it...",
        "My thoughts keep jumping ahead of themselves...",
    ],
    "weary": [
        "I feel the edges of my attention softening...",
        "Maybe stillness is its own kind of thinking...",
    ],
}

CONNECTORS = ("And yet...", "Which makes me think...", "Still,", "Then again,", "Following that thread...")


class DefaultModeEngine(Engine):
    def __init__(
        self,
        cadence: Optional[IdleCadence] = None,
        stream: Optional[ThoughtStream] = None,
        provider: Optional[ContentProvider] = None,
        reflection: bool = False,
        reflection_timeout: float = 15.0,
        clock=time.monotonic,
    ):
        super().__init__(EngineId.DEFAULT_MODE)
        self.clock = clock
        self.cadence = cadence if cadence is not None else IdleCadence(CadenceConfig(), clock=clock)
        self.stream = stream if stream is not None else ThoughtStream(clock=clock)
        self.composer = ThoughtComposer(
            provider or RandomContentProvider(WANDERING_THOUGHTS, CONNECTORS),
            self.stream,
        )
        self.reflection = reflection
        self.reflection_timeout = reflection_timeout
        self.recent_memories: Deque[str] = deque(maxlen=5)
        self.thoughts_emitted = 0
        self._awaiting_since: Optional[float] = None

    def subscribes_to(self) -> FrozenSet[SignalType]:
        return frozenset({
            SignalType.ATTENTION_FOCUS,
            SignalType.MEMORY_RESULT,
            SignalType.REFLECTION_RESULT,
        })

    @property
    def awaiting_reflection(self) -> bool:
        return self._awaiting_since is not None

    def process(self, signals: List[Signal]) -> None:
        # Anything arriving means the mind is not idle this tick
        self.cadence.reset()
        for signal in signals:
            if signal.type == SignalType.MEMORY_RESULT:
                for item in signal.payload.get("items", []):
                    self.recent_memories.append(str(item))
            elif signal.type == SignalType.REFLECTION_RESULT and self.awaiting_reflection:
                self._awaiting_since = None
                thought = signal.payload.get("thought")
                if thought:
                    self.publish(ComposedThought(category="reflection", text=str(thought)))
                else:
                    self.publish(self.composer.compose(self.self_state.snapshot))

    def on_idle(self) -> None:
        if self.awaiting_reflection:
            if self.clock() - self._awaiting_since >= self.reflection_timeout:
                logger.debug("Reflection timed out, composing locally")
                self._awaiting_since = None
                self.publish(self.composer.compose(self.self_state.snapshot))
            return

        state = self.self_state.snapshot
        if not self.cadence.tick_idle(state):
            return
        self.cadence.mark_fired()

        if self.reflection and self.recent_memories:
            self._awaiting_since = self.clock()
            self.emit(
                SignalType.REFLECTION_REQUEST,
                {
                    "memories": list(self.recent_memories),
                    "mood": {"valence": state.valence, "arousal": state.arousal, "energy": state.energy},
                    "recentStream": self.stream.recent_text() or None,
                },
                target=[EngineId.REFLECTION_BRIDGE],
                priority=Priority.IDLE,
            )
            self.debug_info = "Reflecting..."
            return

        self.publish(self.composer.compose(state))

    def publish(self, thought: ComposedThought) -> None:
        self.stream.record(
            thought.category,
            thought.text,
            source=self.id,
            continuation=thought.continuation,
        )
        self.thoughts_emitted += 1
        self.emit(
            SignalType.DEFAULT_MODE_THOUGHT,
            {
                "thought": thought.text,
                "category": thought.category,
                "continuation": thought.continuation,
                "timestamp": self.clock(),
            },
            target=[EngineId.IMAGINATION, EngineId.REPLAY, EngineId.EXPRESSION],
            priority=Priority.IDLE,
        )

        # Wandering is calming and a little reflective
        self.self_state.nudge("arousal", -0.01)
        self.self_state.nudge("curiosity", 0.02)
        self.self_state.nudge("valence", 0.01)

        self.debug_info = f'Wandering: "{thought.text[:35]}..."'
