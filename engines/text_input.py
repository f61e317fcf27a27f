"""Entry point for typed text."""

from typing import FrozenSet, List

from substrate.engine import Engine
from substrate.signals import EngineId, Priority, Signal, SignalType


class TextInputEngine(Engine):
    """Turns TEXT_INPUT into a text perception and an attention focus."""

    def __init__(self, salience: float = 0.8):
        super().__init__(EngineId.TEXT_INPUT)
        self.salience = salience
        self.received = 0

    def subscribes_to(self) -> FrozenSet[SignalType]:
        return frozenset({SignalType.TEXT_INPUT})

    def process(self, signals: List[Signal]) -> None:
        for signal in signals:
            text = str(signal.payload.get("text", "")).strip()
            if not text:
                continue
            self.received += 1
            # Someone is talking to us
            self.self_state.nudge("social", 0.05)
            self.self_state.nudge("arousal", 0.03)

            self.emit(
                SignalType.PERCEPTION_RESULT,
                {"type": "text", "content": text, "timestamp": signal.timestamp, "salience": self.salience},
                priority=Priority.HIGH,
            )
            self.emit(
                SignalType.ATTENTION_FOCUS,
                {"content": text, "modality": "text", "salience": self.salience},
                priority=Priority.HIGH,
            )
            self.debug_info = f'Received: "{text[:40]}"'
