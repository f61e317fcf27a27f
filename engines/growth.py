"""Slow self-assessment from replays, perspective updates and replies."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass
from typing import FrozenSet, List

from substrate.engine import Engine
from substrate.signals import EngineId, Priority, Signal, SignalType

logger = logging.getLogger(__name__)


@dataclass
class GrowthMetrics:
    interaction_count: int = 0
    emotion_accuracy: float = 0.5
    response_quality: float = 0.5
    last_assessment: float = 0.0


class GrowthEngine(Engine):
    """Tracks a rough response-quality metric and periodically reports it.

    Assessment only happens on ticks that delivered something, at most
    once per `assessment_interval` seconds.
    """

    def __init__(self, assessment_interval: float = 30.0, clock=time.monotonic):
        super().__init__(EngineId.GROWTH)
        self.assessment_interval = assessment_interval
        self.clock = clock
        self.metrics = GrowthMetrics(last_assessment=clock())

    def subscribes_to(self) -> FrozenSet[SignalType]:
        return frozenset({
            SignalType.REPLAY_MEMORY,
            SignalType.PERSPECTIVE_UPDATE,
            SignalType.THOUGHT_RESPONSE,
        })

    def _adjust_quality(self, delta: float) -> None:
        m = self.metrics
        m.response_quality = max(0.0, min(1.0, m.response_quality + delta))

    def process(self, signals: List[Signal]) -> None:
        for signal in signals:
            if signal.type == SignalType.REPLAY_MEMORY:
                self.metrics.interaction_count += 1
                self.self_state.nudge("curiosity", 0.01)
            elif signal.type == SignalType.PERSPECTIVE_UPDATE:
                view = signal.payload.get("theyThinkOfMe")
                if view == "positive and engaged":
                    self._adjust_quality(0.01)
                elif view == "not meeting expectations":
                    self._adjust_quality(-0.02)
            elif signal.type == SignalType.THOUGHT_RESPONSE:
                self.metrics.interaction_count += 1
                # A fallback reply means the conversation stumbled
                self._adjust_quality(-0.02 if signal.payload.get("degraded") else 0.01)

        now = self.clock()
        if now - self.metrics.last_assessment >= self.assessment_interval:
            self.assess(now)

        m = self.metrics
        self.debug_info = f"Quality: {m.response_quality * 100:.0f}% | Interactions: {m.interaction_count}"

    def assess(self, now: float) -> None:
        self.metrics.last_assessment = now
        self.emit(
            SignalType.GROWTH_INSIGHT,
            {"metrics": asdict(self.metrics), "timestamp": now},
            target=[EngineId.STRATEGY, EngineId.VALUES],
            priority=Priority.IDLE,
        )
        if self.metrics.response_quality > 0.6:
            self.self_state.nudge("confidence", 0.01)
        logger.debug("Growth assessment: %s", self.metrics)
