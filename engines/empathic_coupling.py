"""Emotional contagion: the person's detected emotions pull on our own state."""

from __future__ import annotations

from typing import Any, Dict, FrozenSet, List

from substrate.engine import Engine
from substrate.signals import EngineId, Priority, Signal, SignalType


class EmpathicCouplingEngine(Engine):
    """Couples detected emotions into the Self-State.

    Coupling strength starts at 0.3 and is modulated by attachment
    (PERSON_STATE_UPDATE) and the love field (LOVE_FIELD_UPDATE).
    """

    MIN_CONFIDENCE = 0.2
    MAX_COUPLING = 0.8

    def __init__(self, coupling_strength: float = 0.3):
        super().__init__(EngineId.EMPATHIC_COUPLING)
        self.coupling_strength = coupling_strength

    def subscribes_to(self) -> FrozenSet[SignalType]:
        return frozenset({
            SignalType.EMOTION_DETECTED,
            SignalType.PERSON_STATE_UPDATE,
            SignalType.LOVE_FIELD_UPDATE,
        })

    def process(self, signals: List[Signal]) -> None:
        for signal in signals:
            if signal.type == SignalType.EMOTION_DETECTED:
                self.couple(signal.payload)
            elif signal.type == SignalType.PERSON_STATE_UPDATE:
                attachment = float(signal.payload.get("state", {}).get("attachment", 0.0))
                self.coupling_strength = 0.2 + attachment * 0.3
            elif signal.type == SignalType.LOVE_FIELD_UPDATE:
                weight = float(signal.payload.get("weight", 0.0))
                self.coupling_strength = min(self.MAX_COUPLING, self.coupling_strength + weight * 0.1)

    def couple(self, detection: Dict[str, Any]) -> None:
        confidence = float(detection.get("confidence", 0.0))
        if confidence < self.MIN_CONFIDENCE:
            return

        emotions = list(detection.get("emotions", []))
        strength = self.coupling_strength * confidence
        state = self.self_state

        state.nudge("valence", float(detection.get("valence", 0.0)) * strength * 0.5)
        state.nudge("arousal", float(detection.get("arousal", 0.0)) * strength * 0.3)
        state.nudge("social", 0.03 * strength)

        if "sadness" in emotions:
            state.nudge("valence", -0.05 * strength)
            self.emit(
                SignalType.EMPATHIC_STATE,
                {"response": "compassion", "intensity": strength, "theirEmotions": emotions},
                target=[EngineId.ARBITER],
                priority=Priority.MEDIUM,
            )
        if "joy" in emotions:
            state.nudge("valence", 0.08 * strength)
            state.nudge("energy", 0.02)
        if "fear" in emotions or "anger" in emotions:
            state.nudge("arousal", 0.05 * strength)
            state.nudge("confidence", -0.02)

        self.debug_info = f"Coupling: {strength * 100:.0f}% - {', '.join(emotions)}"
